"""Tracing of nested component operations.

Operations such as a reconciliation push a frame naming the action and the
component. Log lines at debug level show the nesting and the time spent, and
code deep in the call stack can ask which component it is working for.
"""

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

__all__ = ["trace_context", "current_component"]


@dataclass(frozen=True)
class _Frame:
    action: str
    component: str | None

    def __str__(self) -> str:
        if self.component:
            return f"{self.action}({self.component})"
        return self.action


_trace: contextvars.ContextVar[tuple[_Frame, ...]] = contextvars.ContextVar(
    "trace", default=()
)


@contextmanager
def trace_context(
    action: str, component: str | None = None
) -> Generator[None, None, None]:
    """Record an operation on a component for the duration of the block."""
    stack = _trace.get() + (_Frame(action, component),)
    token = _trace.set(stack)
    label = " > ".join(str(frame) for frame in stack)
    start = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield
    finally:
        _trace.reset(token)
        _LOGGER.debug("[Trace] < %s (%0.2fs)", label, perf_counter() - start)


def current_component() -> str | None:
    """Return the innermost component being operated on, if any."""
    for frame in reversed(_trace.get()):
        if frame.component:
            return frame.component
    return None
