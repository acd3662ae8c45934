"""
Identifier generation.

Every identifier the kernel mints (journal entries, lines, balance slices,
idempotency records, audit entries) comes from an injected IdGenerator so
tests can assert on stable ids.
"""

from __future__ import annotations

import itertools
import threading
from abc import ABC, abstractmethod
from uuid import uuid4


class IdGenerator(ABC):
    """Source of unique string identifiers."""

    @abstractmethod
    def new_id(self) -> str:
        ...


class UUID4Generator(IdGenerator):
    """Random UUID4 identifiers, rendered as 36-character strings."""

    def new_id(self) -> str:
        return str(uuid4())


class SequentialIdGenerator(IdGenerator):
    """
    Deterministic identifiers ``<prefix>-000001``, ``<prefix>-000002``, ...

    Thread-safe so concurrency tests can share one generator.
    """

    def __init__(self, prefix: str = "id", start: int = 1):
        self._prefix = prefix
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def new_id(self) -> str:
        with self._lock:
            n = next(self._counter)
        return f"{self._prefix}-{n:06d}"
