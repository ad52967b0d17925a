"""Context management for TaskService."""

import contextvars
import contextlib
from collections.abc import Generator

from .service import TaskService, TaskServiceImpl

__all__: list[str] = []

_task_service_ctx: contextvars.ContextVar[TaskService | None] = contextvars.ContextVar(
    "_task_service_ctx", default=None
)


def get_task_service() -> TaskService:
    """Get the task service of the current context, creating one if unset."""
    instance = _task_service_ctx.get()
    if instance is None:
        instance = TaskServiceImpl()
        _task_service_ctx.set(instance)
    return instance


@contextlib.contextmanager
def task_service_context(
    service: TaskService | None = None,
) -> Generator[TaskService, None, None]:
    """Install a task service for the duration of the block.

    The previous service of the context is restored on exit.
    """
    service = service or TaskServiceImpl()
    token = _task_service_ctx.set(service)
    try:
        yield service
    finally:
        _task_service_ctx.reset(token)
