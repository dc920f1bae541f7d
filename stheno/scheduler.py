"""Dependency-aware task scheduler for Stheno.

``run_graph`` executes a ``TaskGraph`` on a thread pool. A task starts only
once every prerequisite has succeeded; tasks with unrelated dependency
subtrees run concurrently. When a task fails, every task that transitively
depends on it is marked failed without running, while unrelated tasks carry
on to their own outcome.

Long-lived tasks (the dev server, the site watcher) watch the shared stop
event and return once it is set. Interrupting the run sets that event.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any

from .config import PipelineConfig
from .graph import Task, TaskGraph, TaskState
from .protocols import Reporter


class NullReporter:
    """Reporter that discards every event."""

    def task_started(self, name: str) -> None:
        pass

    def task_finished(self, name: str, duration: float) -> None:
        pass

    def task_failed(self, name: str, error: BaseException, duration: float) -> None:
        pass

    def task_skipped(self, name: str, failed_dependency: str) -> None:
        pass

    def message(self, name: str, text: str) -> None:
        pass


@dataclass
class TaskContext:
    """Everything a task action may use.

    Attributes:
        name: Name of the task being run.
        config: Resolved pipeline configuration.
        stop_event: Set when the run is being torn down.
        reporter: Progress reporter for status lines.
    """

    name: str
    config: PipelineConfig
    stop_event: threading.Event
    reporter: Reporter

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def log(self, text: str) -> None:
        self.reporter.message(self.name, text)


@dataclass
class TaskOutcome:
    """Final state of a task after a run.

    Attributes:
        name: Task name.
        state: Final task state.
        result: Value returned by the action, if it succeeded.
        error: Exception raised by the action, if it failed.
        skipped_because: Failed prerequisite that prevented this task from running.
        duration: Wall time spent in the action, in seconds.
    """

    name: str
    state: TaskState = TaskState.PENDING
    result: Any = None
    error: BaseException | None = None
    skipped_because: str | None = None
    duration: float = 0.0

    @property
    def ran(self) -> bool:
        return self.skipped_because is None and self.state in (
            TaskState.SUCCEEDED,
            TaskState.FAILED,
        )


@dataclass
class RunResult:
    """Outcome of one pipeline run."""

    outcomes: dict[str, TaskOutcome] = field(default_factory=dict)
    failure_order: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(o.state is TaskState.SUCCEEDED for o in self.outcomes.values())

    @property
    def failed(self) -> list[str]:
        return [
            name for name, o in self.outcomes.items() if o.state is TaskState.FAILED
        ]

    @property
    def first_failure(self) -> TaskOutcome | None:
        """The first task whose own action failed."""
        if not self.failure_order:
            return None
        return self.outcomes[self.failure_order[0]]

    def __getitem__(self, name: str) -> TaskOutcome:
        return self.outcomes[name]


def _timed_call(
    task: Task, context: TaskContext
) -> tuple[Any, Exception | None, float]:
    started = time.monotonic()
    try:
        return task.action(context), None, time.monotonic() - started
    except Exception as exc:
        return None, exc, time.monotonic() - started


def run_graph(
    graph: TaskGraph,
    config: PipelineConfig,
    *,
    max_workers: int | None = None,
    reporter: Reporter | None = None,
    stop_event: threading.Event | None = None,
) -> RunResult:
    """Run every task of ``graph`` in dependency order.

    Args:
        graph: Tasks to run.
        config: Configuration threaded into every task context.
        max_workers: Thread cap; defaults to one thread per task so long-lived
            tasks never starve the rest.
        reporter: Progress reporter, silent by default.
        stop_event: Shared stop flag; a fresh one is created when omitted.

    Returns:
        RunResult with one outcome per task.

    Raises:
        GraphError: If the graph is invalid. Nothing runs in that case.
        KeyboardInterrupt: Re-raised after long-lived tasks were stopped.
    """
    graph.validate()
    reporter = reporter or NullReporter()
    stop_event = stop_event or threading.Event()
    if max_workers is not None and max_workers < 1:
        raise ValueError("max_workers must be >= 1")
    workers = max_workers or max(len(graph), 1)

    dependents, remaining = graph.adjacency()
    result = RunResult(outcomes={name: TaskOutcome(name) for name in graph.names})
    ready = deque(name for name in graph.names if remaining[name] == 0)
    running: dict[Future, str] = {}

    def _fail_dependents(failed: str) -> None:
        doomed = graph.dependents_of(failed)
        for name in graph.names:
            if name not in doomed:
                continue
            outcome = result.outcomes[name]
            if outcome.state is not TaskState.PENDING:
                continue
            outcome.state = TaskState.FAILED
            outcome.skipped_because = failed
            reporter.task_skipped(name, failed)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="stheno") as pool:
        try:
            while ready or running:
                while ready:
                    name = ready.popleft()
                    outcome = result.outcomes[name]
                    if outcome.state is not TaskState.PENDING:
                        continue
                    task = graph.task(name)
                    outcome.state = TaskState.RUNNING
                    reporter.task_started(name)
                    context = TaskContext(
                        name=name,
                        config=config,
                        stop_event=stop_event,
                        reporter=reporter,
                    )
                    running[pool.submit(_timed_call, task, context)] = name

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    name = running.pop(future)
                    outcome = result.outcomes[name]
                    error = future.exception()
                    if error is None:
                        value, error, outcome.duration = future.result()
                    if error is None:
                        outcome.result = value
                        outcome.state = TaskState.SUCCEEDED
                        reporter.task_finished(name, outcome.duration)
                        for child in dependents.get(name, []):
                            remaining[child] -= 1
                            if remaining[child] == 0:
                                ready.append(child)
                    else:
                        outcome.error = error
                        outcome.state = TaskState.FAILED
                        result.failure_order.append(name)
                        reporter.task_failed(name, error, outcome.duration)
                        _fail_dependents(name)
        except KeyboardInterrupt:
            stop_event.set()
            raise
    return result
