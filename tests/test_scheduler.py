import math
import threading
import time
import unittest
from datetime import datetime, timedelta

import pytest

from autoupdater import SchedulingError, TaskScheduler
from autoupdater.scheduler import _next_due


class Recorder:
    def __init__(self):
        self.calls = []
        self.cv = threading.Condition()

    def __call__(self, argument):
        with self.cv:
            self.calls.append((argument, time.monotonic()))
            self.cv.notify_all()

    def wait(self, count, timeout=5.0) -> bool:
        with self.cv:
            return self.cv.wait_for(lambda: len(self.calls) >= count, timeout)

    @property
    def arguments(self):
        with self.cv:
            return [a for a, _ in self.calls]


@pytest.fixture
def scheduler():
    sched = TaskScheduler()
    yield sched
    sched.shutdown()


def test_zero_delay_fires_once_and_handle_expires(scheduler):
    rec = Recorder()
    before = time.monotonic()
    task_id = scheduler.schedule_after(0, rec, "payload")
    assert task_id
    assert rec.wait(1)
    time.sleep(0.2)
    assert rec.arguments == ["payload"]
    assert rec.calls[0][1] >= before
    assert not scheduler.is_scheduled(task_id)
    assert len(scheduler) == 0


def test_handles_are_unique(scheduler):
    rec = Recorder()
    ids = [scheduler.schedule_after(60, rec) for _ in range(20)]
    assert len(set(ids)) == 20
    assert all(ids)


def test_earliest_due_fires_first(scheduler):
    rec = Recorder()
    scheduler.schedule_after(0.3, rec, "late")
    scheduler.schedule_after(0.1, rec, "early")
    scheduler.schedule_after(0.2, rec, "middle")
    assert rec.wait(3)
    assert rec.arguments == ["early", "middle", "late"]


def test_schedule_at_absolute_time(scheduler):
    rec = Recorder()
    start = time.monotonic()
    scheduler.schedule_at(datetime.now() + timedelta(seconds=0.3), rec, "at")
    assert rec.wait(1)
    assert rec.calls[0][1] - start >= 0.2


def test_schedule_at_past_time_fires_immediately(scheduler):
    rec = Recorder()
    scheduler.schedule_at(datetime.now() - timedelta(hours=1), rec, "past")
    assert rec.wait(1, timeout=1.0)


def test_schedule_at_accepts_timestamps(scheduler):
    rec = Recorder()
    scheduler.schedule_at(time.time() + 0.1, rec)
    assert rec.wait(1)


def test_repeating_task_until_cancelled(scheduler):
    rec = Recorder()
    task_id = scheduler.schedule_after(0.1, rec, "tick", repeating=True)
    assert rec.wait(3)
    assert scheduler.is_scheduled(task_id)
    scheduler.cancel(task_id)
    time.sleep(0.05)
    count = len(rec.calls)
    time.sleep(0.35)
    assert len(rec.calls) == count
    assert not scheduler.is_scheduled(task_id)


def test_repeating_task_does_not_drift(scheduler):
    interval = 0.1

    def slow(argument):
        rec(argument)
        time.sleep(0.03)

    rec = Recorder()
    start = time.monotonic()
    task_id = scheduler.schedule_after(interval, slow, repeating=True)
    assert rec.wait(5)
    scheduler.cancel(task_id)
    last = rec.calls[4][1] - start
    # five slow callbacks would add 0.12s if the period was re-anchored on "now"
    assert last < 5 * interval + 0.1


def test_cancel_from_inside_callback_stops_future_firings(scheduler):
    fired = []
    holder = {}

    def once(argument):
        fired.append(argument)
        scheduler.cancel(holder["id"])

    holder["id"] = scheduler.schedule_after(0.05, once, "x", repeating=True)
    time.sleep(0.4)
    assert fired == ["x"]


def test_cancel_unknown_or_fired_is_noop(scheduler):
    rec = Recorder()
    task_id = scheduler.schedule_after(0, rec)
    assert rec.wait(1)
    scheduler.cancel(task_id)
    scheduler.cancel(task_id)
    scheduler.cancel(987654)


def test_cancel_before_due(scheduler):
    rec = Recorder()
    task_id = scheduler.schedule_after(0.2, rec)
    scheduler.cancel(task_id)
    time.sleep(0.4)
    assert rec.calls == []


def test_failing_callback_does_not_stop_the_scheduler(scheduler, caplog):
    rec = Recorder()

    def boom(_argument):
        raise RuntimeError("boom")

    scheduler.schedule_after(0.0, boom)
    scheduler.schedule_after(0.1, rec, "after")
    assert rec.wait(1)
    assert "raised" in caplog.text


def test_dispatch_receives_callbacks():
    posted = []
    done = threading.Event()

    def dispatch(fn, argument):
        posted.append((fn, argument, threading.current_thread().name))
        done.set()

    def callback(_argument):
        raise AssertionError("must not run on the timer thread")

    sched = TaskScheduler(dispatch=dispatch, name="timer-under-test")
    try:
        sched.schedule_after(0, callback, 42)
        assert done.wait(2)
    finally:
        sched.shutdown()
    assert posted == [(callback, 42, "timer-under-test")]


def test_shutdown_drops_pending_tasks():
    rec = Recorder()
    sched = TaskScheduler()
    sched.schedule_after(0.2, rec)
    sched.shutdown()
    time.sleep(0.35)
    assert rec.calls == []
    with pytest.raises(SchedulingError):
        sched.schedule_after(1, rec)


class ScheduleValidationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sched = TaskScheduler()

    def tearDown(self) -> None:
        self.sched.shutdown()

    def test_negative_delay(self) -> None:
        with self.assertRaises(SchedulingError):
            self.sched.schedule_after(-1, print)

    def test_repeating_needs_positive_interval(self) -> None:
        with self.assertRaises(SchedulingError):
            self.sched.schedule_after(0, print, repeating=True)

    def test_non_numeric_and_non_finite(self) -> None:
        for bad in ("5", None, True, math.nan, math.inf):
            with self.subTest(bad=bad):
                with self.assertRaises(SchedulingError):
                    self.sched.schedule_after(bad, print)
        with self.assertRaises(SchedulingError):
            self.sched.schedule_at("tomorrow", print)

    def test_callback_must_be_callable(self) -> None:
        with self.assertRaises(TypeError):
            self.sched.schedule_after(1, "not callable")

    def test_scheduling_error_is_a_value_error(self) -> None:
        self.assertTrue(issubclass(SchedulingError, ValueError))


class NextDueTests(unittest.TestCase):
    def test_anchors_on_last_due(self) -> None:
        self.assertEqual(_next_due(10.0, 2.0, 10.5, 0.05), 12.0)

    def test_skips_missed_slots_but_keeps_grid(self) -> None:
        self.assertEqual(_next_due(10.0, 2.0, 15.0, 0.05), 16.0)

    def test_slot_within_tolerance_is_kept(self) -> None:
        self.assertEqual(_next_due(10.0, 2.0, 12.03, 0.05), 12.0)


def test_short_interval_never_fires_ahead_of_its_slot():
    interval = 0.04
    rec = Recorder()
    sched = TaskScheduler(tolerance=0.05)
    try:
        start = time.monotonic()
        task_id = sched.schedule_after(interval, rec, "tick", repeating=True)
        assert rec.wait(5)
        sched.cancel(task_id)
    finally:
        sched.shutdown()
    for n, (_, fired_at) in enumerate(rec.calls[:5], start=1):
        assert fired_at >= start + n * interval - interval / 2


def test_repeating_task_collected_once_per_pass():
    now = [100.0]
    sched = TaskScheduler(tolerance=0.05, clock=lambda: now[0])
    try:
        task_id = sched.schedule_after(0.01, print, repeating=True)
        with sched._cv:
            now[0] = 100.01
            first = sched._collect_due()
            second = sched._collect_due()
        assert [t.task_id for t in first] == [task_id]
        assert second == []
    finally:
        sched.shutdown()
