"""Producers and tick helpers shared by the test modules."""

from tickrun import Producer


def counting_body(log, count):
    """Generator that records each step in log and yields count times."""
    for i in range(count):
        log.append(i)
        yield i


def endless_body(log):
    i = 0
    while True:
        log.append(i)
        yield i
        i += 1


class ScriptedProducer(Producer):
    """Producer that replays a script of outcomes: True, False, or an exception."""

    def __init__(self, outcomes):
        super().__init__()
        self.outcomes = list(outcomes)
        self.calls = 0
        self.closed = False
        self.name = "scripted"

    def advance(self):
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else False
        if isinstance(outcome, Exception):
            raise outcome
        self._current = self.calls
        return outcome

    def close(self):
        self.closed = True


def tick(scheduler, times):
    for _ in range(times):
        scheduler.tick()
