"""Tests for the Task facade: lifecycle events, status and fault routing.

The scenario tests mirror the documented lifecycle guarantees: tasks finish
exactly once, pauses suspend advances, and stops are immediate.
"""

import logging
import threading

import pytest

from tickrun import Task, TaskStatus
from tickrun.errors import TaskAlreadyStartedError, TaskNotStartedError, TaskTerminatedError

from helpers import ScriptedProducer, counting_body, endless_body, tick


def watch(task, scheduler):
    """Record finished/exception emissions with the tick they happened on."""
    record = {"finished": [], "exceptions": []}
    task.finished.subscribe(lambda manual: record["finished"].append((manual, scheduler.tick_count)))
    task.exception.subscribe(record["exceptions"].append)
    return record


# ── Scenarios ───────────────────────────────────────────────────────


class TestScenarios:

    def test_three_yields_then_completion(self, scheduler):
        log = []
        task = Task(counting_body(log, 3), scheduler)
        record = watch(task, scheduler)

        tick(scheduler, 5)

        assert log == [0, 1, 2]
        assert task.advance_count == 3
        assert record["finished"] == [(False, 4)]
        assert task.status is TaskStatus.COMPLETED

    def test_pause_for_three_ticks_then_resume(self, scheduler):
        log = []
        task = Task(endless_body(log), scheduler)
        task.pause()

        tick(scheduler, 3)
        assert log == []

        task.unpause()
        scheduler.tick()
        assert log == [0]

    def test_stop_after_one_advance(self, scheduler):
        log = []
        task = Task(endless_body(log), scheduler)
        record = watch(task, scheduler)
        (stale_handle,) = scheduler._steps

        scheduler.tick()
        assert log == [0]

        task.stop()
        assert [manual for manual, _ in record["finished"]] == [True]

        stale_handle.step_fn()
        scheduler.tick()
        assert log == [0]
        assert task.status is TaskStatus.STOPPED


# ── Lifecycle ───────────────────────────────────────────────────────


class TestTaskLifecycle:

    def test_auto_start(self, scheduler):
        task = Task(counting_body([], 1), scheduler)
        assert task.is_running is True
        assert task.status is TaskStatus.RUNNING
        assert task.started_at is not None

    def test_deferred_start(self, scheduler):
        log = []
        task = Task(counting_body(log, 2), scheduler, auto_start=False)
        record = watch(task, scheduler)

        tick(scheduler, 3)
        assert log == []
        assert task.is_running is False
        assert task.status is TaskStatus.NOT_STARTED
        assert record["finished"] == []

        task.start()
        tick(scheduler, 3)
        assert log == [0, 1]
        assert len(record["finished"]) == 1

    def test_marshalled_start_defers_first_advance(self, scheduler):
        log = []
        task = Task(endless_body(log), scheduler, auto_start=False)
        scheduler.call_soon(task.start)

        scheduler.tick()
        assert task.is_running is True
        assert log == []
        scheduler.tick()
        assert log == [0]

    def test_is_running_while_paused(self, scheduler):
        task = Task(endless_body([]), scheduler)
        task.pause()
        scheduler.tick()
        assert task.is_running is True
        assert task.is_paused is True
        assert task.status is TaskStatus.PAUSED

    def test_is_running_false_after_finish(self, scheduler):
        task = Task(counting_body([], 1), scheduler)
        tick(scheduler, 2)
        assert task.is_running is False
        assert task.is_finished is True
        assert task.ended_at is not None
        assert task.manual is False

    def test_stop_before_tick_still_finishes_manual(self, scheduler):
        log = []
        task = Task(endless_body(log), scheduler)
        record = watch(task, scheduler)

        task.stop()
        tick(scheduler, 3)
        assert log == []
        assert [manual for manual, _ in record["finished"]] == [True]

    def test_finished_fires_exactly_once(self, scheduler):
        task = Task(counting_body([], 1), scheduler)
        record = watch(task, scheduler)
        tick(scheduler, 3)
        task.stop()
        task.pause()
        tick(scheduler, 2)
        assert len(record["finished"]) == 1

    def test_stop_before_start_raises(self, scheduler):
        task = Task(endless_body([]), scheduler, auto_start=False)
        with pytest.raises(TaskNotStartedError):
            task.stop()

    def test_double_start_raises(self, scheduler):
        task = Task(endless_body([]), scheduler)
        with pytest.raises(TaskAlreadyStartedError):
            task.start()

    def test_start_after_stop_raises(self, scheduler):
        task = Task(endless_body([]), scheduler)
        task.stop()
        with pytest.raises(TaskTerminatedError):
            task.start()

    def test_current_value(self, scheduler):
        task = Task(counting_body([], 3), scheduler)
        assert task.current is None
        tick(scheduler, 2)
        assert task.current == 1

    def test_stop_closes_generator(self, scheduler):
        events = []

        def body():
            try:
                while True:
                    yield
            finally:
                events.append("cleanup")

        task = Task(body(), scheduler)
        scheduler.tick()
        task.stop()
        assert events == ["cleanup"]

    def test_generator_function_accepted(self, scheduler):
        def body():
            yield

        task = Task(body, scheduler, name="job")
        assert task.name == "job"
        tick(scheduler, 2)
        assert task.status is TaskStatus.COMPLETED

    def test_elapsed_time(self, scheduler):
        task = Task(counting_body([], 1), scheduler, auto_start=False)
        assert task.elapsed_time() == 0.0
        task.start()
        tick(scheduler, 2)
        assert task.elapsed_time() == task.ended_at - task.started_at

    def test_many_tasks_tick_independently(self, scheduler):
        short_log, long_log = [], []
        short = Task(counting_body(short_log, 1), scheduler)
        long = Task(counting_body(long_log, 4), scheduler)

        tick(scheduler, 3)
        assert short.is_finished
        assert long.is_running
        assert long_log == [0, 1, 2]


# ── Fault routing ───────────────────────────────────────────────────


class TestTaskFaults:

    def test_fault_delivered_to_subscribers(self, scheduler):
        error = KeyError("missing")
        producer = ScriptedProducer([True, error, True])
        task = Task(producer, scheduler)
        record = watch(task, scheduler)

        tick(scheduler, 4)
        assert record["exceptions"] == [error]
        assert [manual for manual, _ in record["finished"]] == [False]
        assert task.status is TaskStatus.FAILED
        assert task.fault is error
        assert producer.calls == 2

    def test_fault_reaches_only_current_subscribers(self, scheduler):
        error = RuntimeError("late")
        early, late = [], []
        task = Task(ScriptedProducer([True, error]), scheduler)
        handler = task.exception.subscribe(early.append)
        task.exception.unsubscribe(handler)
        task.exception.subscribe(late.append)

        tick(scheduler, 2)
        assert early == []
        assert late == [error]

    def test_unobserved_fault_logged(self, scheduler, caplog):
        def body():
            yield
            raise ValueError("nobody listening")

        task = Task(body(), scheduler, name="lonely")
        finished = []
        task.finished.subscribe(finished.append)

        with caplog.at_level(logging.ERROR, logger="tickrun"):
            tick(scheduler, 3)

        assert "lonely" in caplog.text
        assert "nobody listening" in caplog.text
        assert finished == [False]

    def test_custom_fault_sink(self, scheduler):
        sunk = []
        error = RuntimeError("sunk")
        task = Task(
            ScriptedProducer([error]), scheduler,
            fault_sink=lambda t, e: sunk.append((t, e)),
        )
        scheduler.tick()
        assert sunk == [(task, error)]

    def test_faulting_task_does_not_affect_others(self, scheduler):
        log = []
        Task(ScriptedProducer([RuntimeError("x")]), scheduler, fault_sink=lambda t, e: None)
        healthy = Task(counting_body(log, 3), scheduler)

        tick(scheduler, 4)
        assert log == [0, 1, 2]
        assert healthy.status is TaskStatus.COMPLETED

    def test_repr(self, scheduler):
        task = Task(counting_body([], 1), scheduler, auto_start=False, task_id="abc")
        assert repr(task) == "<Task 'abc' not_started>"

    def test_raising_fault_sink_still_finishes(self, scheduler, caplog):
        def sink(task, fault):
            raise RuntimeError("sink broken")

        task = Task(ScriptedProducer([ValueError("x")]), scheduler, fault_sink=sink)
        record = watch(task, scheduler)
        with caplog.at_level(logging.WARNING, logger="tickrun"):
            tick(scheduler, 2)

        assert record["finished"] == [(False, 1)]
        assert task.status is TaskStatus.FAILED
        assert "sink broken" in caplog.text
        assert "raised; deregistering" not in caplog.text


# ── Cross-thread control ────────────────────────────────────────────


class TestCrossTaskControl:

    def test_tasks_stopping_each_other_from_two_threads(self, scheduler):
        a = Task(endless_body([]), scheduler, name="a")
        b = Task(endless_body([]), scheduler, name="b")
        both_finishing = threading.Barrier(2)
        results = {"a": [], "b": []}

        def stop_when_both_finishing(other):
            def handler(manual):
                both_finishing.wait(timeout=2.0)
                other.stop()
            return handler

        a.finished.subscribe(stop_when_both_finishing(b))
        b.finished.subscribe(stop_when_both_finishing(a))
        a.finished.subscribe(results["a"].append)
        b.finished.subscribe(results["b"].append)
        scheduler.tick()

        threads = [
            threading.Thread(target=a.stop, daemon=True),
            threading.Thread(target=b.stop, daemon=True),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5.0)

        assert not any(thread.is_alive() for thread in threads)
        assert results == {"a": [True], "b": [True]}
        assert scheduler.active_count == 0
