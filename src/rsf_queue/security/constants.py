"""Roles, resources and actions checked by the RBAC policy."""

ROLE_MANAGER = "manager"
ROLE_CONSULTANT = "consultant"
KNOWN_ROLES = frozenset({ROLE_MANAGER, ROLE_CONSULTANT})

RESOURCE_QUEUE = "queue"
RESOURCE_TASK = "task"
RESOURCE_JOB_DEFINITIONS = "job_definitions"
RESOURCE_JOB_RESULTS = "job_results"
RESOURCE_TASK_UPDATES = "task_updates"

ACTION_READ = "read"
ACTION_PRIORITIZE = "prioritize"
ACTION_STOP = "stop"
ACTION_CREATE = "create"
ACTION_EXECUTE = "execute"
ACTION_SUBSCRIBE = "subscribe"
ACTION_RECEIVE = "receive"
