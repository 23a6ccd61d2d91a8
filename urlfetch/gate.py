"""Length gate used to enforce a response's declared ``Content-Length``."""

from __future__ import annotations

import re

__all__ = ["ContentLengthError", "LengthGate"]

DECLARED_LENGTH_PATTERN = re.compile(r"^[0-9]+$")


class ContentLengthError(ValueError):
    """Raised when a declared length is not a non-negative decimal integer."""


class LengthGate:
    """Remaining-budget counter for a bounded copy.

    ``remaining`` is a plain Python ``int`` and therefore has no upper bound;
    declared lengths beyond the 64-bit range are tracked exactly. Only the
    per-chunk request size returned by :meth:`want_this_time` is narrowed to
    the caller's buffer capacity.
    """

    __slots__ = ("_remaining",)

    def __init__(self, remaining: int) -> None:
        if remaining < 0:
            raise ContentLengthError("Declared length must not be negative.")
        self._remaining = remaining

    @classmethod
    def from_declared(cls, declared: str) -> "LengthGate":
        """Build a gate from the textual value of a ``Content-Length`` header."""

        text = declared.strip()
        if not DECLARED_LENGTH_PATTERN.fullmatch(text):
            raise ContentLengthError(f"Malformed Content-Length value: {declared!r}")
        return cls(int(text))

    @property
    def remaining(self) -> int:
        return self._remaining

    def has_more(self) -> bool:
        return self._remaining > 0

    def want_this_time(self, capacity: int) -> int:
        if capacity <= 0:
            raise ValueError("Chunk capacity must be positive.")
        return capacity if self._remaining > capacity else self._remaining

    def consume(self, count: int) -> None:
        if count < 0:
            raise ValueError("Cannot consume a negative amount.")
        if count > self._remaining:
            raise ValueError(
                f"Cannot consume {count} units; only {self._remaining} remain."
            )
        self._remaining -= count

    def close(self) -> None:
        """Exhaust the gate; no further copying will be requested."""

        self._remaining = 0

    def __repr__(self) -> str:
        return f"LengthGate(remaining={self._remaining})"
