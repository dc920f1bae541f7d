"""Protocol definitions for Stheno.

This module defines the interfaces shared between the scheduler, the task
actions and the template extension hook.

These protocols enable:
- Swapping the console reporter for a silent or recording one in tests
- Plain functions as task actions and tag renderers
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .scheduler import TaskContext
    from .tags import TagInvocation


@runtime_checkable
class TaskAction(Protocol):
    """Protocol for the work a task performs.

    Raising any exception marks the task failed; the return value is kept
    on the task outcome.
    """

    @abstractmethod
    def __call__(self, context: TaskContext) -> Any: ...


@runtime_checkable
class RenderableTag(Protocol):
    """Protocol for a template tag renderer.

    Renderers receive the parsed invocation and return a markup fragment.
    """

    @abstractmethod
    def __call__(self, invocation: TagInvocation) -> str: ...


@runtime_checkable
class Reporter(Protocol):
    """Protocol for reporting pipeline progress."""

    @abstractmethod
    def task_started(self, name: str) -> None:
        """Called right before a task's action runs."""
        ...

    @abstractmethod
    def task_finished(self, name: str, duration: float) -> None:
        """Called when a task's action returned normally.

        Args:
            name: Task name.
            duration: Wall time in seconds.
        """
        ...

    @abstractmethod
    def task_failed(self, name: str, error: BaseException, duration: float) -> None:
        """Called when a task's action raised."""
        ...

    @abstractmethod
    def task_skipped(self, name: str, failed_dependency: str) -> None:
        """Called when a task is failed because a prerequisite failed."""
        ...

    @abstractmethod
    def message(self, name: str, text: str) -> None:
        """Free-form status line emitted by a running task."""
        ...
