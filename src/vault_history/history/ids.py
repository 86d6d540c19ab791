"""Pluggable id generation and clock.

Revision and conflict ids are opaque 36-character tokens.  The engine takes
an ``IdGenerator`` and a ``Clock`` at construction time so tests can replace
both with deterministic versions.
"""

from __future__ import annotations

import itertools
import time
import uuid
from typing import Callable

IdGenerator = Callable[[], str]
Clock = Callable[[], int]


def uuid4_ids() -> str:
    """Return a random UUID4 rendered as 36 characters."""
    return str(uuid.uuid4())


def unix_now() -> int:
    """Return the current Unix time in whole seconds."""
    return int(time.time())


class SequentialIds:
    """Deterministic UUID-shaped ids: ``00000000-0000-0000-0000-000000000001``, ..."""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)

    def __call__(self) -> str:
        return str(uuid.UUID(int=next(self._counter)))


class SteppingClock:
    """Deterministic clock that advances by *step* seconds on every read."""

    def __init__(self, start: int = 1_700_000_000, step: int = 1) -> None:
        self.now = start
        self._step = step

    def __call__(self) -> int:
        value = self.now
        self.now += self._step
        return value
