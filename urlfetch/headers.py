"""Request header parsing and response header echo formatting."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

__all__ = ["Header", "fold_headers", "format_header_echo", "format_timing", "parse_header"]


@dataclass(frozen=True)
class Header:
    """A single ``Name: Value`` pair, as supplied on the command line."""

    name: str
    value: str = ""

    def __str__(self) -> str:
        return f"{self.name}: {self.value}"


def parse_header(raw: str) -> Header:
    """Split ``raw`` on its first colon.

    A string without a colon, or one whose colon is the first character,
    becomes a header named after the whole string with an empty value.
    """

    position = raw.find(":")
    if position > 0:
        return Header(name=raw[:position].strip(), value=raw[position + 1 :].strip())
    return Header(name=raw, value="")


def fold_headers(headers: Iterable[Header]) -> dict[str, str]:
    """Combine repeated names into one comma-separated field, keeping first-seen order."""

    folded: dict[str, str] = {}
    canonical: dict[str, str] = {}
    for header in headers:
        key = header.name.lower()
        if key in canonical:
            name = canonical[key]
            folded[name] = f"{folded[name]}, {header.value}"
        else:
            canonical[key] = header.name
            folded[header.name] = header.value
    return folded


def format_header_echo(status_line: str, headers: Sequence[Header]) -> list[str]:
    """Render the ``-S`` header echo as a list of output lines."""

    lines = [f"  {status_line}"]
    lines.extend(f"  {header.name}: {header.value}" for header in headers)
    lines.append("")
    return lines


def format_timing(elapsed_ms: int) -> str:
    return f"Time-to-headers: {elapsed_ms}ms"
