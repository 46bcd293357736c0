"""Shared fixtures for tickrun tests."""

import pytest

from tickrun import TickScheduler


@pytest.fixture()
def scheduler():
    return TickScheduler()
