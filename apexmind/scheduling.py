"""Explicit scheduled-task list driven by the engine's update tick.

Subsystems register maintenance work here instead of firing delayed callbacks
of their own. Nothing runs until ``run_due`` is called, so tests can drive a
virtual clock deterministically and no timer outlives the scheduler.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional


Clock = Callable[[], float]
"""Zero-argument callable returning the current time in seconds."""


@dataclass(frozen=True)
class Interval:
    """Represents an ``every N seconds`` cadence."""

    every: float

    def is_due(self, *, now: float, last_run: Optional[float]) -> bool:
        """Return ``True`` when the cadence fires at ``now``."""

        if self.every <= 0:
            return True

        if last_run is None:
            return True

        return now - last_run >= self.every


@dataclass
class ScheduledTask:
    """A named callback bound to an interval (or a single due time)."""

    name: str
    callback: Callable[[float], None]
    interval: Optional[Interval] = None
    due_at: Optional[float] = None
    last_run: Optional[float] = None

    @property
    def repeating(self) -> bool:
        return self.interval is not None

    def is_due(self, now: float) -> bool:
        if self.interval is not None:
            return self.interval.is_due(now=now, last_run=self.last_run)
        return self.due_at is not None and now >= self.due_at


@dataclass
class TaskScheduler:
    """Owns every delayed/periodic task of a subsystem.

    Notes
    -----
    * Callbacks receive the tick time so they never read the wall clock.
    * One-shot tasks are removed after they fire; ``cancel`` drops a task by name.
    * A callback that schedules or cancels tasks takes effect on the next tick.
    """

    clock: Clock = time.time
    tasks: List[ScheduledTask] = field(default_factory=list)

    def every(self, name: str, seconds: float, callback: Callable[[float], None]) -> ScheduledTask:
        """Register a repeating task; it first fires on the next tick."""

        self.cancel(name)
        task = ScheduledTask(name=name, callback=callback, interval=Interval(every=seconds))
        self.tasks.append(task)
        return task

    def once(self, name: str, delay: float, callback: Callable[[float], None]) -> ScheduledTask:
        """Register a one-shot task ``delay`` seconds from now."""

        self.cancel(name)
        task = ScheduledTask(name=name, callback=callback, due_at=self.clock() + delay)
        self.tasks.append(task)
        return task

    def cancel(self, name: str) -> bool:
        before = len(self.tasks)
        self.tasks = [task for task in self.tasks if task.name != name]
        return len(self.tasks) != before

    def run_due(self, now: Optional[float] = None) -> List[str]:
        """Run every task due at ``now`` and return the names that ran."""

        now = self.clock() if now is None else now
        ran: List[str] = []
        fired: List[ScheduledTask] = []
        # Snapshot first: callbacks may register or cancel tasks.
        for task in list(self.tasks):
            if not task.is_due(now):
                continue
            task.callback(now)
            task.last_run = now
            ran.append(task.name)
            fired.append(task)

        self.tasks = [
            task
            for task in self.tasks
            if task.repeating or not any(task is done for done in fired)
        ]
        return ran

    def clear(self) -> None:
        self.tasks.clear()
