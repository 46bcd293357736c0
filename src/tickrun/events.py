"""
Events - Observer lists for task lifecycle notifications.

An Event holds an ordered list of handlers. emit() calls a snapshot of the
list, so handlers may subscribe or unsubscribe while an emission is running
without affecting that emission.
"""

import logging
import threading
from typing import Any, Callable, List

# Module logger
logger = logging.getLogger("tickrun")


class Event:
    """Multicast notification channel.

    Example:
        finished = Event("finished")

        @finished.subscribe
        def on_finished(manual):
            print("stopped manually" if manual else "completed")

        finished.emit(False)
    """

    def __init__(self, name):
        # type: (str) -> None
        self.name = name
        self._handlers = []  # type: List[Callable[..., Any]]
        self._lock = threading.Lock()

    def subscribe(self, handler):
        # type: (Callable[..., Any]) -> Callable[..., Any]
        """Add a handler. Returns the handler so this works as a decorator."""
        if not callable(handler):
            raise TypeError("Event handler must be callable, got {!r}".format(handler))
        with self._lock:
            self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler):
        # type: (Callable[..., Any]) -> bool
        """Remove the first registration of handler. Returns False if absent."""
        with self._lock:
            try:
                self._handlers.remove(handler)
            except ValueError:
                return False
        return True

    @property
    def has_subscribers(self):
        # type: () -> bool
        with self._lock:
            return bool(self._handlers)

    def __len__(self):
        with self._lock:
            return len(self._handlers)

    def emit(self, *args):
        # type: (Any) -> int
        """
        Call every handler with args, in subscription order.

        A handler that raises is logged and skipped; the remaining handlers
        still run.

        Returns:
            int: Number of handlers called
        """
        with self._lock:
            handlers = list(self._handlers)

        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.warning(
                    "Handler %r for event '%s' failed",
                    handler, self.name, exc_info=True
                )
        return len(handlers)
