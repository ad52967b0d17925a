"""Task tracking module for tm-local.

Batch reconciliation runs one task per component through a `TaskService`
and joins them before reporting results.
"""

from .context import task_service_context, get_task_service
from .service import TaskService, TaskServiceImpl

__all__ = ["get_task_service", "task_service_context", "TaskService", "TaskServiceImpl"]
