"""
Task - User-facing handle to a scheduled, suspendable unit of work.

A Task wraps a producer (usually a generator) and a TickScheduler. Tasks
can be started, paused, unpaused and stopped from any call site, and
publish two events:

- finished(manual): fires exactly once when the task terminates. manual is
  True if and only if the task was ended by an explicit stop().
- exception(fault): fires once per fault raised by the producer. Faults
  terminate the task; finished(False) follows.

A task is single-use: once finished it cannot be started again.

Usage:
    def _do_something():
        for item in work:
            process(item)
            yield

    task = Task(_do_something(), scheduler)
    task.finished.subscribe(lambda manual: print("Task is finished!"))
    task.exception.subscribe(lambda e: print("Exception occurred:", e))

    task.pause()
    task.unpause()
    task.stop()
"""

import enum
import logging
import time
from typing import Any, Callable, Optional

from .events import Event
from .producer import ProducerLike, as_producer, producer_name
from .runner import Runner
from .scheduler import TickScheduler

# Module logger
logger = logging.getLogger("tickrun")


class TaskStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({TaskStatus.STOPPED, TaskStatus.COMPLETED, TaskStatus.FAILED})


def log_fault(task, fault):
    # type: (Task, Exception) -> None
    """Default sink for faults nobody subscribed to."""
    logger.error(
        "Unhandled exception in task %s", task.name,
        exc_info=(type(fault), fault, fault.__traceback__),
    )


class Task:
    """
    A cooperatively scheduled unit of work.

    is_running is True from start() until finished fires, including while
    paused. is_paused reflects the most recent pause()/unpause() call.
    """

    def __init__(self, producer, scheduler, auto_start=True, name=None,
                 description="", fault_sink=None, task_id=None):
        # type: (ProducerLike, TickScheduler, bool, Optional[str], str, Optional[Callable[[Task, Exception], None]], Optional[str]) -> None
        """
        Args:
            producer: Producer, generator, or zero-argument generator function
            scheduler: Tick facility driving this task
            auto_start: Start immediately (default True)
            name: Display name (default: producer name)
            description: Free-form description for status listings
            fault_sink: Called with (task, fault) when a fault has no
                exception subscribers (default: log_fault)
            task_id: Registry id, assigned by TaskManager
        """
        producer = as_producer(producer)
        self.name = name or producer_name(producer)
        self.description = description
        self.task_id = task_id
        self.fault_sink = fault_sink or log_fault

        self.finished = Event("finished")
        self.exception = Event("exception")

        self.created_at = time.time()
        self.started_at = None  # type: Optional[float]
        self.ended_at = None  # type: Optional[float]
        self.manual = None  # type: Optional[bool]

        self._runner = Runner(
            producer, scheduler,
            on_fault=self._on_exception,
            on_finished=self._task_finished,
            name=self.name,
        )

        if auto_start:
            self.start()

    # ── Status ──────────────────────────────────────────────────

    @property
    def is_running(self):
        # type: () -> bool
        """True if and only if the task is running. Paused tasks are running."""
        return self._runner.running

    @property
    def is_paused(self):
        # type: () -> bool
        return self._runner.paused

    @property
    def is_finished(self):
        # type: () -> bool
        return self._runner.finished

    @property
    def current(self):
        # type: () -> Any
        """Value yielded by the producer's last advance."""
        return self._runner.current

    @property
    def fault(self):
        # type: () -> Optional[Exception]
        return self._runner.fault

    @property
    def advance_count(self):
        # type: () -> int
        return self._runner.advance_count

    @property
    def status(self):
        # type: () -> TaskStatus
        runner = self._runner
        if runner.finished:
            if runner.stopped:
                return TaskStatus.STOPPED
            if runner.fault is not None:
                return TaskStatus.FAILED
            return TaskStatus.COMPLETED
        if not runner.started:
            return TaskStatus.NOT_STARTED
        return TaskStatus.PAUSED if runner.paused else TaskStatus.RUNNING

    def elapsed_time(self):
        # type: () -> float
        """Seconds since start(), frozen once the task has finished."""
        if self.started_at is None:
            return 0.0
        end = self.ended_at if self.ended_at is not None else time.time()
        return end - self.started_at

    # ── Control ─────────────────────────────────────────────────

    def start(self):
        # type: () -> None
        """
        Begin execution. The first step runs on the next tick.

        Raises:
            TaskAlreadyStartedError: The task is already running
            TaskTerminatedError: The task was stopped or has completed
        """
        self._runner.start()
        self.started_at = time.time()
        logger.info("Task started: %s", self.name)

    def stop(self):
        # type: () -> bool
        """
        Discontinue execution. finished(True) fires before this returns.

        Returns:
            bool: False if the task had already finished

        Raises:
            TaskNotStartedError: The task was never started
        """
        return self._runner.stop()

    def pause(self):
        # type: () -> None
        self._runner.pause()

    def unpause(self):
        # type: () -> None
        self._runner.unpause()

    # ── Runner callbacks ────────────────────────────────────────

    def _on_exception(self, fault):
        # type: (Exception) -> None
        if self.exception.has_subscribers:
            self.exception.emit(fault)
        else:
            self.fault_sink(self, fault)

    def _task_finished(self, manual):
        # type: (bool) -> None
        self.ended_at = time.time()
        self.manual = manual
        logger.info(
            "Task finished: %s (status=%s, advances=%d)",
            self.name, self.status.value, self.advance_count
        )
        self.finished.emit(manual)

    def __repr__(self):
        return "<Task {!r} {}>".format(self.task_id or self.name, self.status.value)
