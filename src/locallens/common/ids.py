"""Identifier providers for places and stories."""

from __future__ import annotations

import itertools
import secrets
import string

_ALPHABET = string.digits + string.ascii_lowercase


class IdGenerator:
    """Produces identifiers for recognized records."""

    def next_id(self) -> str:
        raise NotImplementedError

    def __call__(self) -> str:
        return self.next_id()


class RandomIds(IdGenerator):
    """Short random base36 identifiers."""

    def __init__(self, length: int = 9) -> None:
        self.length = length

    def next_id(self) -> str:
        return "".join(secrets.choice(_ALPHABET) for _ in range(self.length))


class SequentialIds(IdGenerator):
    """Deterministic ``prefix-1``, ``prefix-2``... identifiers."""

    def __init__(self, prefix: str = "id", start: int = 1) -> None:
        self.prefix = prefix
        self._counter = itertools.count(start)

    def next_id(self) -> str:
        return f"{self.prefix}-{next(self._counter)}"
