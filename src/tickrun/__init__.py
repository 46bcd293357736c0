"""tickrun - Cooperatively scheduled, pausable and stoppable tasks.

A Task wraps a generator (or any Producer) and advances it one step per
scheduler tick. Tasks can be paused, unpaused and stopped from anywhere,
and publish ``finished`` and ``exception`` events.

Usage:
    from tickrun import Task, TickScheduler

    scheduler = TickScheduler()

    def _do_something():
        for chunk in chunks:
            handle(chunk)
            yield

    task = Task(_do_something(), scheduler)
    task.finished.subscribe(lambda manual: print("done", manual))

    while task.is_running:
        scheduler.tick()
"""

__version__ = "0.2.0"

from .errors import (
    ControlProtocolError,
    TaskAlreadyStartedError,
    TaskNotFoundError,
    TaskNotStartedError,
    TaskStateError,
    TaskTerminatedError,
    TickrunError,
)
from .events import Event
from .manager import TaskManager
from .producer import GeneratorProducer, Producer, as_producer
from .runner import Runner
from .runtime import Runtime, configure_logging, start
from .scheduler import StepHandle, TickScheduler
from .task import Task, TaskStatus, log_fault

__all__ = [
    "__version__",
    "ControlProtocolError",
    "Event",
    "GeneratorProducer",
    "Producer",
    "Runner",
    "Runtime",
    "StepHandle",
    "Task",
    "TaskAlreadyStartedError",
    "TaskManager",
    "TaskNotFoundError",
    "TaskNotStartedError",
    "TaskStateError",
    "TaskStatus",
    "TaskTerminatedError",
    "TickScheduler",
    "TickrunError",
    "as_producer",
    "configure_logging",
    "log_fault",
    "start",
]
