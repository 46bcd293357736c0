"""Tests for TickScheduler: step registration, ticking and marshalled calls."""

import logging
import threading

import pytest

from tickrun.scheduler import TickScheduler


# ── Registration & ticking ──────────────────────────────────────────


class TestStepRegistration:
    """Steps run once per tick until they finish or are deregistered."""

    def test_step_runs_once_per_tick(self, scheduler):
        calls = []
        scheduler.register(lambda: calls.append(scheduler.tick_count) or True)

        scheduler.tick()
        scheduler.tick()
        assert calls == [1, 2]

    def test_step_returning_false_is_deregistered(self, scheduler):
        calls = []

        def step():
            calls.append(1)
            return len(calls) < 2

        handle = scheduler.register(step)
        for _ in range(4):
            scheduler.tick()

        assert len(calls) == 2
        assert handle.active is False
        assert scheduler.active_count == 0

    def test_registration_order(self, scheduler):
        order = []
        scheduler.register(lambda: order.append("a") or True)
        scheduler.register(lambda: order.append("b") or True)
        scheduler.tick()
        assert order == ["a", "b"]

    def test_step_registered_during_tick_starts_next_tick(self, scheduler):
        calls = []

        def late():
            calls.append("late")
            return True

        def spawner():
            scheduler.register(late)
            return False

        scheduler.register(spawner)
        assert scheduler.tick() == 1
        assert calls == []
        scheduler.tick()
        assert calls == ["late"]

    def test_step_deregistered_during_tick_is_skipped(self, scheduler):
        calls = []
        handles = {}

        def first():
            scheduler.deregister(handles["second"])
            return True

        handles["first"] = scheduler.register(first)
        handles["second"] = scheduler.register(lambda: calls.append(1) or True)

        assert scheduler.tick() == 1
        assert calls == []

    def test_deregister_is_idempotent(self, scheduler):
        handle = scheduler.register(lambda: True)
        assert scheduler.deregister(handle) is True
        assert scheduler.deregister(handle) is False

    def test_raising_step_isolated(self, scheduler, caplog):
        calls = []

        def broken():
            raise RuntimeError("step bug")

        bad = scheduler.register(broken, name="broken")
        scheduler.register(lambda: calls.append(1) or True)

        with caplog.at_level(logging.ERROR, logger="tickrun"):
            scheduler.tick()
            scheduler.tick()

        assert calls == [1, 1]
        assert bad.active is False
        assert "broken" in caplog.text

    def test_is_tick_thread(self, scheduler):
        assert scheduler.is_tick_thread() is False
        scheduler.tick()
        assert scheduler.is_tick_thread() is True


# ── Marshalled calls ────────────────────────────────────────────────


class TestCallSoon:
    """call_soon() defers work to the start of the next tick."""

    def test_call_runs_on_next_tick(self, scheduler):
        future = scheduler.call_soon(lambda x, y: x + y, 2, y=3)
        assert not future.done()
        assert scheduler.pending_calls() == 1

        scheduler.tick()
        assert future.result(timeout=0) == 5
        assert scheduler.pending_calls() == 0

    def test_call_runs_before_steps(self, scheduler):
        order = []
        scheduler.register(lambda: order.append("step") or True)
        scheduler.call_soon(lambda: order.append("call"))
        scheduler.tick()
        assert order == ["call", "step"]

    def test_step_registered_by_call_starts_next_tick(self, scheduler):
        calls = []
        scheduler.call_soon(scheduler.register, lambda: calls.append("step") or True)

        assert scheduler.tick() == 0
        assert calls == []
        scheduler.tick()
        assert calls == ["step"]

    def test_call_exception_set_on_future(self, scheduler):
        def fail():
            raise ValueError("bad call")

        future = scheduler.call_soon(fail)
        scheduler.tick()
        with pytest.raises(ValueError, match="bad call"):
            future.result(timeout=0)

    def test_cancelled_call_skipped(self, scheduler):
        calls = []
        future = scheduler.call_soon(lambda: calls.append(1))
        assert future.cancel() is True
        scheduler.tick()
        assert calls == []

    def test_max_calls_per_tick(self):
        scheduler = TickScheduler(max_calls_per_tick=2)
        futures = [scheduler.call_soon(lambda i=i: i) for i in range(5)]

        scheduler.tick()
        assert [f.done() for f in futures] == [True, True, False, False, False]
        scheduler.tick()
        scheduler.tick()
        assert all(f.done() for f in futures)

    def test_non_positive_limit_means_unbounded(self):
        assert TickScheduler(max_calls_per_tick=0).max_calls_per_tick is None

    def test_call_from_other_thread(self, scheduler):
        futures = []
        worker = threading.Thread(target=lambda: futures.append(scheduler.call_soon(threading.get_ident)))
        worker.start()
        worker.join()

        scheduler.tick()
        assert futures[0].result(timeout=0) == threading.get_ident()


# ── Blocking pump ───────────────────────────────────────────────────


class TestRunBlocking:

    def test_max_ticks(self, scheduler):
        calls = []
        scheduler.register(lambda: calls.append(1) or True)
        assert scheduler.run_blocking(interval_ms=0, max_ticks=3) == 3
        assert len(calls) == 3

    def test_stop_event(self, scheduler):
        stop = threading.Event()

        def step():
            if scheduler.tick_count >= 2:
                stop.set()
            return True

        scheduler.register(step)
        ticks = scheduler.run_blocking(interval_ms=1, stop_event=stop)
        assert ticks == 2

    def test_preset_stop_event_runs_nothing(self, scheduler):
        stop = threading.Event()
        stop.set()
        assert scheduler.run_blocking(interval_ms=1, stop_event=stop) == 0
