"""Output destination selection for fetched bodies."""

from __future__ import annotations

import io
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Optional, TextIO
from urllib.parse import unquote, urlparse

__all__ = [
    "DEFAULT_FILENAME",
    "STDOUT_TARGET",
    "binary_sink",
    "derive_target_filename",
    "describe_target",
    "resolve_target",
    "text_sink",
]

STDOUT_TARGET = "-"
DEFAULT_FILENAME = "index.html"


def derive_target_filename(url: str) -> str:
    """Name the output file after the last path segment of ``url``."""

    path = urlparse(url).path or ""
    name = unquote(path.rsplit("/", 1)[-1])
    if not name.strip():
        return DEFAULT_FILENAME
    return name


def resolve_target(output: Optional[str], final_url: str) -> str:
    if output is None:
        return derive_target_filename(final_url)
    return output


def describe_target(target: str) -> str:
    return "STDOUT" if target == STDOUT_TARGET else target


def _stdout_buffer() -> BinaryIO:
    return sys.stdout.buffer


@contextmanager
def binary_sink(target: str) -> Iterator[BinaryIO]:
    """Yield a byte sink; files are closed afterwards, stdout is only flushed."""

    if target == STDOUT_TARGET:
        sys.stdout.flush()
        buffer = _stdout_buffer()
        try:
            yield buffer
        finally:
            buffer.flush()
        return

    with Path(target).open("wb") as handle:
        yield handle


@contextmanager
def text_sink(target: str, charset: str) -> Iterator[TextIO]:
    """Yield a text sink that encodes with ``charset`` and never translates newlines."""

    with binary_sink(target) as raw:
        wrapper = io.TextIOWrapper(raw, encoding=charset, errors="replace", newline="")
        try:
            yield wrapper
        finally:
            wrapper.flush()
            # Detach so that dropping the wrapper does not close the underlying sink.
            wrapper.detach()
