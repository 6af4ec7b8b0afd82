import json
from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    # Application Settings
    app_name: str = "RSF Task Queue"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False, alias="DEBUG")
    host: str = Field(default="0.0.0.0", description="Host", alias="HOST")
    port: int = Field(default=8123, description="Port", alias="PORT")

    # Database Settings
    db_path: str = Field(
        default="data/rsf_queue.db", description="SQLite database path", alias="DB_PATH"
    )
    db_driver_async: str = Field(
        default="sqlite+aiosqlite",
        description="SQLAlchemy async driver",
        alias="DB_DRIVER_ASYNC",
    )
    db_host: Optional[str] = Field(default=None, description="Database host", alias="DB_HOST")
    db_port: Optional[int] = Field(default=None, description="Database port", alias="DB_PORT")
    db_user: Optional[str] = Field(default=None, description="Database user", alias="DB_USER")
    db_password: Optional[str] = Field(
        default=None, description="Database password", alias="DB_PASSWORD"
    )
    db_name: Optional[str] = Field(default=None, description="Database name", alias="DB_NAME")
    db_schema: Optional[str] = Field(
        default=None, description="Database schema/search_path", alias="DB_SCHEMA"
    )
    db_echo: bool = Field(
        default=False, description="Enable SQLAlchemy echo logging", alias="DB_ECHO"
    )
    db_create_tables: bool = Field(
        default=True,
        description="Create missing tables on startup (use Alembic in production)",
        alias="DB_CREATE_TABLES",
    )
    sqlite_busy_timeout_seconds: int = Field(
        default=30,
        description="SQLite busy timeout (seconds) when the database is locked",
        alias="SQLITE_BUSY_TIMEOUT_SECONDS",
    )
    sqlite_journal_mode: str = Field(
        default="WAL",
        description="SQLite journal mode (e.g. DELETE, WAL, MEMORY)",
        alias="SQLITE_JOURNAL_MODE",
    )
    sqlite_synchronous: str = Field(
        default="NORMAL",
        description="SQLite synchronous setting (e.g. FULL, NORMAL, OFF)",
        alias="SQLITE_SYNCHRONOUS",
    )

    # Auth Settings
    auth_jwt_secret: str = Field(
        default="change-me", description="JWT signing secret", alias="AUTH_JWT_SECRET"
    )
    auth_jwt_audience: str = Field(
        default="rsf-queue:auth",
        description="Expected JWT audience claim",
        alias="AUTH_JWT_AUDIENCE",
    )
    auth_access_token_lifetime: int = Field(
        default=3600,
        description="JWT access token lifetime in seconds",
        alias="AUTH_ACCESS_TOKEN_LIFETIME",
    )

    # Worker Settings
    worker_enabled: bool = Field(
        default=True, description="Run the queue worker in-process", alias="WORKER_ENABLED"
    )
    worker_max_concurrent_tasks: int = Field(
        default=1,
        ge=1,
        description="Maximum number of tasks executed at the same time",
        alias="WORKER_MAX_CONCURRENT_TASKS",
    )
    worker_poll_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Delay between queue polls when idle",
        alias="WORKER_POLL_INTERVAL_SECONDS",
    )
    worker_cancellation_check_interval_seconds: float = Field(
        default=2.0,
        gt=0,
        description="How often running handlers re-check for cancellation",
        alias="WORKER_CANCELLATION_CHECK_INTERVAL_SECONDS",
    )
    worker_shutdown_grace_seconds: float = Field(
        default=10.0,
        ge=0,
        description="How long shutdown waits for in-flight tasks",
        alias="WORKER_SHUTDOWN_GRACE_SECONDS",
    )

    # Pre-optimization Settings
    pre_optimization_lock_key: int = Field(
        default=123456789,
        description="Advisory lock key shared by all pre-optimization executions",
        alias="PRE_OPTIMIZATION_LOCK_KEY",
    )
    lock_stale_after_seconds: int = Field(
        default=6 * 3600,
        description="Age after which a table-based lock row is considered abandoned",
        alias="LOCK_STALE_AFTER_SECONDS",
    )
    import_stage_delay_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Pause between import stages",
        alias="IMPORT_STAGE_DELAY_SECONDS",
    )

    # API Settings
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"],
        description="CORS allowed origins",
        alias="CORS_ORIGINS",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value):
        if value is None or value == "":
            return ["http://localhost:5173"]

        if isinstance(value, str):
            value = value.strip()
            if value.startswith("["):
                try:
                    parsed = json.loads(value)
                except json.JSONDecodeError as exc:
                    raise ValueError("Invalid JSON for CORS origins") from exc
                value = parsed if isinstance(parsed, list) else [parsed]
            else:
                value = [item.strip() for item in value.split(",") if item.strip()]

        if isinstance(value, list):
            origins = [str(item).strip() for item in value if str(item).strip()]
            return origins or ["http://localhost:5173"]

        raise ValueError("Unsupported CORS origins format")

    # logging
    log_file: Optional[str] = Field(default=None, description="Log file path", alias="LOG_FILE")
    log_level: str = Field(default="INFO", description="Log level", alias="LOG_LEVEL")

    @property
    def is_sqlite(self) -> bool:
        return self.db_driver_async.lower().startswith("sqlite")

    @property
    def database_dsn_async(self) -> str:
        return self._build_sql_dsn(self.db_driver_async)

    def _build_sql_dsn(self, driver: str) -> str:
        if driver.lower().startswith("sqlite"):
            return f"{driver}:///{self.db_path}"

        credentials = ""
        if self.db_user:
            credentials = quote_plus(self.db_user)
            if self.db_password:
                credentials += f":{quote_plus(self.db_password)}"
            credentials += "@"

        host = self.db_host or "localhost"
        port = f":{self.db_port}" if self.db_port else ""
        name = self.db_name or ""
        return f"{driver}://{credentials}{host}{port}/{name}"


settings = Settings()
