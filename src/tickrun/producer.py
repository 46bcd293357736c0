"""
Producer - The unit of stepped work driven by a Runner.

A producer exposes a single advance() operation that runs one step and
reports whether more steps remain. Task bodies are normally written as
plain generators and wrapped with GeneratorProducer:

    def countdown(n):
        while n:
            yield n
            n -= 1

    task = Task(countdown(3), scheduler)

Each ``yield`` is a suspension point: the body resumes on the next tick.
"""

import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Generator, Union


class Producer(ABC):
    """
    Abstract stepped work.

    Subclasses implement advance(). The runner calls it at most once per
    tick, always from the tick thread, and never again after it returned
    False or raised.
    """

    def __init__(self):
        # type: () -> None
        self._current = None  # type: Any

    @property
    def current(self):
        # type: () -> Any
        """Value produced by the last successful advance (None before any)."""
        return self._current

    @abstractmethod
    def advance(self):
        # type: () -> bool
        """
        Run one step.

        Returns:
            bool: True if more steps remain, False once exhausted

        Raises:
            Exception: Any fault raised by the step body
        """

    def close(self):
        # type: () -> None
        """Release the producer before exhaustion (manual stop)."""


class GeneratorProducer(Producer):
    """Producer backed by a native generator object."""

    def __init__(self, generator):
        # type: (Generator[Any, Any, Any]) -> None
        super().__init__()
        if not inspect.isgenerator(generator):
            raise TypeError("GeneratorProducer requires a generator, got {!r}".format(generator))
        self._generator = generator
        self.name = getattr(generator, "__name__", "generator")
        self.return_value = None  # type: Any

    def advance(self):
        # type: () -> bool
        try:
            self._current = next(self._generator)
        except StopIteration as stop:
            self.return_value = stop.value
            self._current = None
            return False
        return True

    def close(self):
        # type: () -> None
        # Runs the body's finally blocks; a no-op once exhausted.
        self._generator.close()

    def __repr__(self):
        return "<GeneratorProducer {}>".format(self.name)


ProducerLike = Union[Producer, Generator[Any, Any, Any], Callable[[], Generator[Any, Any, Any]]]


def as_producer(obj):
    # type: (ProducerLike) -> Producer
    """
    Normalize obj into a Producer.

    Accepts a Producer instance, a generator object, or a zero-argument
    generator function.

    Raises:
        TypeError: If obj is none of the above
    """
    if isinstance(obj, Producer):
        return obj
    if inspect.isgenerator(obj):
        return GeneratorProducer(obj)
    if inspect.isgeneratorfunction(obj):
        return GeneratorProducer(obj())
    raise TypeError(
        "Expected a Producer, generator or generator function, got {!r}".format(obj)
    )


def producer_name(producer):
    # type: (Producer) -> str
    """Best-effort display name for log messages."""
    name = getattr(producer, "name", None)
    return name if name else type(producer).__name__
