"""Tests for the tick-driven task scheduler."""

from apexmind.scheduling import Interval, TaskScheduler


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_interval_is_due():
    interval = Interval(every=10)
    assert interval.is_due(now=0, last_run=None)
    assert not interval.is_due(now=9.9, last_run=0)
    assert interval.is_due(now=10, last_run=0)
    assert Interval(every=0).is_due(now=0, last_run=0)


def test_repeating_task_fires_on_cadence():
    clock = FakeClock()
    scheduler = TaskScheduler(clock=clock)
    seen = []
    scheduler.every("sweep", 60, seen.append)

    assert scheduler.run_due() == ["sweep"]
    clock.now = 30
    assert scheduler.run_due() == []
    clock.now = 60
    assert scheduler.run_due() == ["sweep"]

    assert seen == [0, 60]


def test_one_shot_task_runs_once():
    clock = FakeClock(100)
    scheduler = TaskScheduler(clock=clock)
    seen = []
    scheduler.once("respawn", 5, seen.append)

    assert scheduler.run_due(now=104) == []
    assert scheduler.run_due(now=105) == ["respawn"]
    assert scheduler.run_due(now=200) == []
    assert seen == [105]
    assert scheduler.tasks == []


def test_reregistering_replaces_and_cancel_removes():
    scheduler = TaskScheduler(clock=FakeClock())
    calls = []
    scheduler.every("job", 1, lambda now: calls.append("old"))
    scheduler.every("job", 1, lambda now: calls.append("new"))

    scheduler.run_due()
    assert calls == ["new"]

    assert scheduler.cancel("job")
    assert not scheduler.cancel("job")
    assert scheduler.run_due(now=10) == []


def test_tasks_added_by_callbacks_wait_for_next_tick():
    scheduler = TaskScheduler(clock=FakeClock())
    ran = []

    def spawn(now):
        scheduler.once("child", 0, lambda t: ran.append(t))

    scheduler.once("parent", 0, spawn)

    assert scheduler.run_due(now=0) == ["parent"]
    assert ran == []
    assert scheduler.run_due(now=1) == ["child"]
    assert ran == [1]


def test_clear_drops_everything():
    scheduler = TaskScheduler(clock=FakeClock())
    scheduler.every("a", 1, lambda now: None)
    scheduler.once("b", 1, lambda now: None)
    scheduler.clear()
    assert scheduler.run_due(now=100) == []
