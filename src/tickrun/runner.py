"""
Runner - Drives one producer to completion, one advance per tick.

The runner owns the lifecycle flags of a task (running, paused, stopped),
its registration with the TickScheduler, and the producer it steps. Faults
raised by the producer are caught here and handed to the owning task; they
never reach the scheduler.

Termination policy:
- Natural exhaustion emits finished(False) in the tick where advance()
  returned False.
- A producer fault is reported, then terminates the task with
  finished(False). The producer is not advanced again.
- stop() deregisters, closes the producer and emits finished(True) before
  returning.

finished is emitted through a one-shot guard, so it fires exactly once per
runner whatever the order of stop() and natural completion.

The termination decision is made under the runner lock; on_fault and
on_finished are queued and called only after the lock is released, so
handlers may control other tasks from any thread. A failing handler is
logged and does not escape into the scheduler or the stop() caller.
"""

import logging
import threading
from typing import Any, Callable, List, Optional, Tuple

from .errors import TaskAlreadyStartedError, TaskNotStartedError, TaskTerminatedError
from .producer import Producer, producer_name
from .scheduler import StepHandle, TickScheduler

# Module logger
logger = logging.getLogger("tickrun")

# A queued callback and its single argument
Notice = Tuple[Callable[[Any], None], Any]


class Runner:
    """
    Stepping engine behind a Task.

    Flags are guarded by a re-entrant lock so control calls may come from any
    thread. A producer that calls stop() on its own task from inside
    advance() re-enters the lock on the tick thread.
    """

    def __init__(self, producer, scheduler, on_fault, on_finished, name=None):
        # type: (Producer, TickScheduler, Callable[[Exception], None], Callable[[bool], None], Optional[str]) -> None
        """
        Args:
            producer: The work to drive
            scheduler: Tick facility to register the step with
            on_fault: Called with each exception raised by the producer
            on_finished: Called exactly once with manual=True/False
            name: Label for log messages (default: producer name)
        """
        self.name = name or producer_name(producer)
        self._producer = producer
        self._scheduler = scheduler
        self._on_fault = on_fault
        self._on_finished = on_finished
        self._lock = threading.RLock()

        self._running = False
        self._paused = False
        self._stopped = False
        self._started = False
        self._finished = False
        self._handle = None  # type: Optional[StepHandle]
        self._advancing = False

        self.advance_count = 0
        self.fault = None  # type: Optional[Exception]

    # ── Status ──────────────────────────────────────────────────

    @property
    def running(self):
        # type: () -> bool
        return self._running

    @property
    def paused(self):
        # type: () -> bool
        return self._paused

    @property
    def stopped(self):
        # type: () -> bool
        """True if stop() was called while the runner was active."""
        return self._stopped

    @property
    def started(self):
        # type: () -> bool
        return self._started

    @property
    def finished(self):
        # type: () -> bool
        return self._finished

    @property
    def current(self):
        # type: () -> Any
        return self._producer.current

    # ── Control ─────────────────────────────────────────────────

    def start(self):
        # type: () -> None
        """
        Register with the scheduler. The first advance happens next tick.

        Raises:
            TaskTerminatedError: The runner already finished
            TaskAlreadyStartedError: The runner is already active
        """
        with self._lock:
            if self._finished:
                raise TaskTerminatedError(
                    "Task '{}' has already terminated and cannot be restarted".format(self.name),
                    self.name,
                )
            if self._started:
                raise TaskAlreadyStartedError(
                    "Task '{}' is already running".format(self.name), self.name
                )
            self._started = True
            self._running = True
            self._handle = self._scheduler.register(self._step, name=self.name)
        logger.debug("Runner started: %s", self.name)

    def stop(self):
        # type: () -> bool
        """
        Stop immediately and emit finished(True) before returning.

        Waits for an advance in flight on another thread to complete; no
        advance happens after this returns.

        Returns:
            bool: False if the runner had already finished (no-op)

        Raises:
            TaskNotStartedError: The runner was never started
        """
        notices = []  # type: List[Notice]
        with self._lock:
            if self._finished:
                return False
            if not self._started:
                raise TaskNotStartedError(
                    "Task '{}' cannot be stopped before it is started".format(self.name),
                    self.name,
                )
            self._stopped = True
            self._running = False
            self._release()
            try:
                self._close_producer(notices)
            finally:
                self._finish(notices)
        logger.info("Task stopped manually: %s", self.name)
        self._notify(notices)
        return True

    def pause(self):
        # type: () -> None
        with self._lock:
            if not self._finished:
                self._paused = True

    def unpause(self):
        # type: () -> None
        with self._lock:
            if not self._finished:
                self._paused = False

    # ── Stepping (tick thread) ──────────────────────────────────

    def _step(self):
        # type: () -> bool
        """Scheduler callback. Returns False once the runner is done."""
        notices = []  # type: List[Notice]
        try:
            with self._lock:
                return self._advance_once(notices)
        finally:
            self._notify(notices)

    def _advance_once(self, notices):
        # type: (List[Notice]) -> bool
        if self._finished:
            # Stale registration: never advance after termination
            return False
        if not self._running:
            self._release()
            self._finish(notices)
            return False
        if self._paused:
            return True

        self._advancing = True
        try:
            has_more = self._producer.advance()
        except Exception as e:
            self._advancing = False
            self.fault = e
            logger.debug("Producer fault in task %s: %r", self.name, e)
            notices.append((self._on_fault, e))
            self._release()
            self._finish(notices)
            return False
        self._advancing = False

        if self._finished:
            # The producer stopped its own task from inside advance()
            return False
        if has_more:
            self.advance_count += 1
            return True

        self._release()
        self._finish(notices)
        return False

    # ── Internals ───────────────────────────────────────────────

    def _release(self):
        # type: () -> None
        handle = self._handle
        self._handle = None
        if handle is not None:
            self._scheduler.deregister(handle)

    def _close_producer(self, notices):
        # type: (List[Notice]) -> None
        if self._advancing:
            # Cannot close a generator from inside its own body
            return
        try:
            self._producer.close()
        except Exception as e:
            self.fault = e
            notices.append((self._on_fault, e))

    def _finish(self, notices):
        # type: (List[Notice]) -> None
        if self._finished:
            return
        self._finished = True
        self._running = False
        manual = self._stopped
        logger.debug("Runner finished: %s (manual=%s)", self.name, manual)
        notices.append((self._on_finished, manual))

    def _notify(self, notices):
        # type: (List[Notice]) -> None
        """Deliver queued fault/finished callbacks outside the lock, in order."""
        for callback, arg in notices:
            try:
                callback(arg)
            except Exception:
                logger.warning(
                    "Notification %r for task %s failed", callback, self.name, exc_info=True
                )
