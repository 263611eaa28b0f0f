"""
Pytest configuration for the frayed tests.

Puts the project root on the Python path so the tests import the working
copy of the package, and provides the shared frayed producers.
"""

import sys
from pathlib import Path

# Add the parent directory to the Python path
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

import pytest

from frayed import Frayed, reset_settings


class SevenIter(Frayed):
    """Yields 1, 2, |, 4, 5, |, 7, |, |, ... where | is a StopIteration"""

    def __init__(self, start: int = 0):
        self.n = start
        self.pulls = 0

    def __next__(self):
        self.n += 1
        self.pulls += 1
        if self.n % 3 != 0 and self.n <= 7:
            return self.n
        raise StopIteration


class ScriptedFrayed(Frayed):
    """Replays a script where None marks a group terminator.

    An exception instance in the script is raised once, in its place.
    """

    def __init__(self, script):
        self.script = list(script)
        self.position = 0

    def __next__(self):
        if self.position >= len(self.script):
            raise StopIteration
        item = self.script[self.position]
        self.position += 1
        if item is None:
            raise StopIteration
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def seven():
    """Fresh SevenIter producer"""
    return SevenIter()


@pytest.fixture
def scripted():
    """Factory for scripted frayed producers"""
    return ScriptedFrayed


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate every test from FRAYED_* variables and cached settings"""
    monkeypatch.delenv('FRAYED_LOG_LEVEL', raising=False)
    monkeypatch.delenv('FRAYED_CHECK_INVARIANTS', raising=False)
    reset_settings()
    yield
    reset_settings()
