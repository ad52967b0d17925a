"""Task tracking service for tm-local.

Batch operations fan work out as tasks and wait on a single join barrier
before reporting, see `TaskService.block_till_done`.
"""

import asyncio
from functools import partial
import logging
from typing import Any, Coroutine, Set
from abc import ABC, abstractmethod

_LOGGER = logging.getLogger(__name__)

__all__: list[str] = []


class TaskService(ABC):
    """Service for tracking and waiting for asynchronous tasks."""

    @abstractmethod
    def create_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a new task.

        Args:
            coro: The coroutine to run as a task
            name: Optional name of the task, used in log messages

        Returns:
            The created task
        """

    @abstractmethod
    async def block_till_done(self) -> None:
        """Wait for all tracked tasks to complete.

        Failures of individual tasks are logged and do not interrupt the
        wait. Tasks created while waiting are waited for as well.
        """

    @abstractmethod
    def get_num_active_tasks(self) -> int:
        """Get the number of tracked tasks that have not completed."""


class TaskServiceImpl(TaskService):
    """Service for tracking and waiting for asynchronous tasks."""

    def __init__(self) -> None:
        """Initialize the task service."""
        self._active_tasks: Set[asyncio.Task[Any]] = set()

    def create_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a new task."""
        task = asyncio.create_task(coro, name=name)
        self._active_tasks.add(task)
        task.add_done_callback(partial(self._task_done, self._active_tasks))
        return task

    def _task_done(
        self, task_set: Set[asyncio.Task[Any]], task: asyncio.Task[Any]
    ) -> None:
        """Callback when a task is done."""
        try:
            task.result()
        except asyncio.CancelledError:
            _LOGGER.debug("Task %s was cancelled", task.get_name())
        except Exception as e:
            _LOGGER.error("Task %s failed: %s", task.get_name(), e)
        finally:
            task_set.discard(task)

    async def block_till_done(self) -> None:
        """Wait for all tracked tasks to complete."""
        while active_tasks := list(self._active_tasks):
            _LOGGER.debug("Waiting for %d tasks to complete", len(active_tasks))
            await asyncio.gather(*active_tasks, return_exceptions=True)
            # Done callbacks run on the next loop iteration
            await asyncio.sleep(0)

    def get_num_active_tasks(self) -> int:
        """Get the number of tracked tasks that have not completed."""
        return len(self._active_tasks)
