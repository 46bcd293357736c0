"""
Tick Scheduler - Per-tick step invocation for cooperative tasks.

This module provides the tick facility that drives task runners. A host
owns one TickScheduler and calls tick() once per scheduling cycle, either
from its own loop (a GUI timer, a game frame, a server loop) or through the
blocking pump run_blocking().

Registered step functions are invoked once per tick, in registration order,
until they return False or are deregistered. Control calls that originate
off the tick thread are marshalled with call_soon() and executed at the
start of the next tick.
"""

import itertools
import logging
import queue
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, List, Optional

# Module logger
logger = logging.getLogger("tickrun")


class StepHandle:
    """Registration of one step function with a TickScheduler."""

    __slots__ = ("handle_id", "name", "step_fn", "active")

    def __init__(self, handle_id, name, step_fn):
        # type: (int, str, Callable[[], bool]) -> None
        self.handle_id = handle_id
        self.name = name
        self.step_fn = step_fn
        self.active = True

    def __repr__(self):
        return "<StepHandle {} '{}' {}>".format(
            self.handle_id, self.name, "active" if self.active else "inactive"
        )


class TickScheduler:
    """
    Invoke registered step functions once per tick.

    Not a thread pool: every step runs on the thread that calls tick().
    register(), deregister() and call_soon() are safe to call from any
    thread.
    """

    def __init__(self, max_calls_per_tick=None):
        # type: (Optional[int]) -> None
        """
        Args:
            max_calls_per_tick: Maximum marshalled calls drained per tick.
                None or <= 0 drains every pending call.
        """
        self.max_calls_per_tick = max_calls_per_tick if max_calls_per_tick and max_calls_per_tick > 0 else None
        self.tick_count = 0
        self._steps = []  # type: List[StepHandle]
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._calls = queue.Queue()  # type: queue.Queue
        self._tick_thread_id = None  # type: Optional[int]

    # ── Registration ────────────────────────────────────────────

    def register(self, step_fn, name=None):
        # type: (Callable[[], bool], Optional[str]) -> StepHandle
        """
        Register step_fn to run once per tick, starting with the next tick.

        Args:
            step_fn: Zero-argument callable; return False to stop being called
            name: Label used in log messages

        Returns:
            StepHandle: Pass to deregister() to cancel future invocations
        """
        handle = StepHandle(next(self._ids), name or getattr(step_fn, "__name__", "step"), step_fn)
        with self._lock:
            self._steps.append(handle)
        logger.debug("Step registered: %s (active=%d)", handle.name, self.active_count)
        return handle

    def deregister(self, handle):
        # type: (StepHandle) -> bool
        """
        Cancel future invocations of a step. Idempotent.

        Returns:
            bool: True if the handle was active
        """
        with self._lock:
            if not handle.active:
                return False
            handle.active = False
            try:
                self._steps.remove(handle)
            except ValueError:
                pass
        logger.debug("Step deregistered: %s", handle.name)
        return True

    @property
    def active_count(self):
        # type: () -> int
        with self._lock:
            return len(self._steps)

    def is_tick_thread(self):
        # type: () -> bool
        """True when called from the thread that ran the most recent tick."""
        return self._tick_thread_id == threading.current_thread().ident

    # ── Marshalled calls ────────────────────────────────────────

    def call_soon(self, func, *args, **kwargs):
        # type: (Callable[..., Any], Any, Any) -> Future
        """
        Queue func to run on the tick thread at the start of the next tick.

        Returns:
            Future: Resolves with func's result or exception
        """
        future = Future()  # type: Future
        self._calls.put((func, args, kwargs, future))
        logger.debug(
            "Call queued: %s (queue_size=%d)",
            getattr(func, "__name__", repr(func)), self._calls.qsize()
        )
        return future

    def pending_calls(self):
        # type: () -> int
        return self._calls.qsize()

    def _process_calls(self):
        # type: () -> int
        processed = 0
        while self.max_calls_per_tick is None or processed < self.max_calls_per_tick:
            try:
                func, args, kwargs, future = self._calls.get_nowait()
            except queue.Empty:
                break
            processed += 1

            # Returns False if the caller cancelled while queued
            if not future.set_running_or_notify_cancel():
                logger.debug("Call skipped (cancelled): %s", getattr(func, "__name__", func))
                continue
            try:
                future.set_result(func(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)
                logger.debug("Call failed: %s - %s", getattr(func, "__name__", func), e)
        return processed

    # ── Ticking ─────────────────────────────────────────────────

    def tick(self):
        # type: () -> int
        """
        Run one scheduling tick.

        Snapshots the registered steps, drains marshalled calls, then invokes
        each snapshotted step that is still active once. Steps registered by a
        marshalled call therefore first run on the following tick. A step
        that raises is logged and deregistered so the remaining steps still
        run.

        Returns:
            int: Number of step functions invoked
        """
        self._tick_thread_id = threading.current_thread().ident
        self.tick_count += 1

        with self._lock:
            snapshot = list(self._steps)

        self._process_calls()

        invoked = 0
        for handle in snapshot:
            if not handle.active:
                continue
            invoked += 1
            try:
                keep = handle.step_fn()
            except Exception:
                logger.exception("Step '%s' raised; deregistering it", handle.name)
                keep = False
            if not keep:
                self.deregister(handle)
        return invoked

    def run_blocking(self, interval_ms=20, stop_event=None, max_ticks=None):
        # type: (float, Optional[threading.Event], Optional[int]) -> int
        """
        Block the calling thread and tick every interval_ms.

        Used by console hosts that have no frame loop of their own.

        Args:
            interval_ms: Sleep between ticks in milliseconds
            stop_event: Exit once this event is set
            max_ticks: Exit after this many ticks

        Returns:
            int: Number of ticks run
        """
        sleep_s = max(0.0, interval_ms / 1000.0)
        ticks = 0
        try:
            while stop_event is None or not stop_event.is_set():
                if max_ticks is not None and ticks >= max_ticks:
                    break
                self.tick()
                ticks += 1
                if stop_event is not None:
                    stop_event.wait(sleep_s)
                else:
                    time.sleep(sleep_s)
        except KeyboardInterrupt:
            logger.info("Tick loop stopped by user")
        return ticks
