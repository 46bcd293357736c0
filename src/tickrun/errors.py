"""Exception types raised by tickrun.

Producer faults are never raised through these types: they are captured by
the runner and delivered to the owning task's ``exception`` event. The
classes here cover programming errors surfaced to the caller of a control
method, registry lookups, and control-protocol rejections.
"""


class TickrunError(Exception):
    """Base class for all tickrun errors."""


class TaskStateError(TickrunError):
    """A control operation was called in a state that does not allow it."""

    def __init__(self, message, task_name=None):
        # type: (str, str | None) -> None
        super().__init__(message)
        self.task_name = task_name


class TaskAlreadyStartedError(TaskStateError):
    """start() was called on a task that is already active."""


class TaskTerminatedError(TaskStateError):
    """start() was called on a task that was stopped or has completed."""


class TaskNotStartedError(TaskStateError):
    """stop() was called on a task that was never started."""


class TaskNotFoundError(TickrunError):
    """No task is registered under the requested id."""

    def __init__(self, task_id):
        # type: (str) -> None
        super().__init__("Task ID not found: {}".format(task_id))
        self.task_id = task_id


class ControlProtocolError(TickrunError):
    """The control server answered with an error frame instead of a result."""
