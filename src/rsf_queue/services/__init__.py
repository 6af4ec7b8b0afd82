"""Queue, worker, execution engine and broadcaster services."""
