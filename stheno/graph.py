"""Task graph structures for Stheno.

A ``TaskGraph`` is an explicit set of named tasks plus dependency edges.
Targets build one graph each and hand it to the scheduler, so ordering and
failure propagation never depend on an implicit registry.

Key classes:
- Task: A named action with its prerequisites.
- TaskGraph: Validated collection of tasks.
- TaskState: Completion state of a task during a run.
"""

from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from .protocols import TaskAction


class GraphError(Exception):
    """Raised when a task graph is malformed."""


class TaskError(Exception):
    """Base error for task actions that fail in an expected way."""


class TaskState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Task:
    """A named build step.

    Attributes:
        name: Unique task name.
        action: Callable receiving the task context.
        depends_on: Names of tasks that must succeed first.
        description: One-line summary shown by ``stheno tasks``.
    """

    name: str
    action: TaskAction
    depends_on: tuple[str, ...] = ()
    description: str = ""


class TaskGraph:
    """Directed acyclic graph of tasks keyed by name.

    Tasks keep their insertion order, which is also the order ready tasks
    are started in.
    """

    def __init__(self, tasks: Iterable[Task] = ()):
        self._tasks: dict[str, Task] = {}
        for task in tasks:
            self.add(task)

    def add(self, task: Task) -> Task:
        """Add a task to the graph.

        Raises:
            GraphError: If a task with the same name already exists.
        """
        if not task.name:
            raise GraphError("Task name must not be empty.")
        if task.name in self._tasks:
            raise GraphError(f"Duplicate task name: {task.name}")
        self._tasks[task.name] = task
        return task

    def task(self, name: str) -> Task:
        try:
            return self._tasks[name]
        except KeyError:
            raise GraphError(f"Unknown task: {name}") from None

    @property
    def names(self) -> list[str]:
        return list(self._tasks)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __iter__(self) -> Iterator[Task]:
        return iter(self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)

    def adjacency(self) -> tuple[dict[str, list[str]], dict[str, int]]:
        """Return dependents adjacency and in-degree by task name."""
        dependents: dict[str, list[str]] = defaultdict(list)
        in_degree: dict[str, int] = {}
        for task in self._tasks.values():
            in_degree[task.name] = len(task.depends_on)
            dependents.setdefault(task.name, [])
            for dep in task.depends_on:
                dependents[dep].append(task.name)
        return dict(dependents), in_degree

    def validate(self) -> None:
        """Check prerequisites exist and the graph has no cycle.

        Raises:
            GraphError: On unknown or duplicated prerequisites, or a cycle.
        """
        for task in self._tasks.values():
            if len(set(task.depends_on)) != len(task.depends_on):
                raise GraphError(f"Task {task.name} lists a prerequisite twice.")
            for dep in task.depends_on:
                if dep == task.name:
                    raise GraphError(f"Task {task.name} depends on itself.")
                if dep not in self._tasks:
                    raise GraphError(
                        f"Task {task.name} depends on unknown task {dep}."
                    )
        self.topological_order()

    def topological_order(self) -> list[str]:
        """Return task names in dependency order using Kahn's algorithm.

        Raises:
            GraphError: If the graph has a cycle.
        """
        dependents, in_degree = self.adjacency()
        degrees = dict(in_degree)
        queue = deque(name for name in self._tasks if degrees[name] == 0)
        order: list[str] = []
        while queue:
            current = queue.popleft()
            order.append(current)
            for nxt in dependents.get(current, []):
                degrees[nxt] -= 1
                if degrees[nxt] == 0:
                    queue.append(nxt)
        if len(order) != len(self._tasks):
            cyclic = sorted(name for name, degree in degrees.items() if degree > 0)
            raise GraphError(f"Task graph has cyclic dependencies: {', '.join(cyclic)}")
        return order

    def dependents_of(self, name: str) -> set[str]:
        """Return every task that transitively depends on ``name``."""
        dependents, _ = self.adjacency()
        seen: set[str] = set()
        stack = list(dependents.get(name, []))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(dependents.get(current, []))
        return seen
