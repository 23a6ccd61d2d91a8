"""Streaming response copiers with optional length enforcement.

A single copy loop drives both modes. What differs between raw bytes and
decoded text is how a unit is read, written and charged against the gate;
that lives in the transfer strategies.
"""

from __future__ import annotations

import codecs
import logging
from typing import IO, BinaryIO, Optional, Protocol, Sized, TextIO

from .gate import ContentLengthError, LengthGate
from .transport import CHUNK_SIZE, FetchError, FetchedResponse, close_quietly

LOGGER = logging.getLogger(__name__)

# Malformed input is replaced with U+FFFD.
DECODE_ERRORS = "replace"


class _Transfer(Protocol):
    source: IO

    def read(self, size: int) -> Sized: ...

    def write(self, chunk) -> None: ...

    def write_bounded(self, chunk, gate: LengthGate) -> None: ...

    def flush(self) -> None: ...


class ByteTransfer:
    """Raw byte transfer; one unit is one byte."""

    def __init__(self, source: BinaryIO, sink: BinaryIO) -> None:
        self.source = source
        self.sink = sink

    def read(self, size: int) -> bytes:
        return self.source.read(size)

    def write(self, chunk: bytes) -> None:
        self.sink.write(chunk)

    def write_bounded(self, chunk: bytes, gate: LengthGate) -> None:
        self.sink.write(chunk)
        gate.consume(len(chunk))

    def flush(self) -> None:
        self.sink.flush()


def ensure_codec(charset: str) -> codecs.CodecInfo:
    """Look up ``charset``, failing the fetch when Python has no codec for it."""

    try:
        return codecs.lookup(charset)
    except LookupError as exc:
        raise FetchError(f"Unsupported charset: {charset}") from exc


class TextTransfer:
    """Decoded character transfer; one unit is one decoded character.

    Under a gate, each chunk is re-encoded to learn its real byte size. A
    chunk that overshoots the remaining budget is cut at the byte level and
    decoded again without its trailing partial sequence, so the output never
    ends inside a code point.
    """

    def __init__(self, source: BinaryIO, sink: TextIO, charset: str) -> None:
        codec = ensure_codec(charset)
        self.source = source
        self.sink = sink
        self.charset = codec.name
        self._reader = codec.streamreader(source, errors=DECODE_ERRORS)
        self._encoder = codec.incrementalencoder(errors=DECODE_ERRORS)

    def read(self, size: int) -> str:
        # size also bounds each raw read from the source.
        return self._reader.read(size, chars=size)

    def write(self, chunk: str) -> None:
        self.sink.write(chunk)

    def write_bounded(self, chunk: str, gate: LengthGate) -> None:
        encoded = self._encoder.encode(chunk)
        if len(encoded) > gate.remaining:
            budget = gate.want_this_time(len(encoded))
            decoder = codecs.getincrementaldecoder(self.charset)(errors=DECODE_ERRORS)
            # final=False drops an incomplete trailing sequence instead of replacing it.
            self.sink.write(decoder.decode(encoded[:budget], final=False))
            gate.close()
            return
        self.sink.write(chunk)
        gate.consume(len(chunk))

    def flush(self) -> None:
        self.sink.flush()


def _run_copy(transfer: _Transfer, gate: Optional[LengthGate], chunk_size: int) -> None:
    try:
        if gate is None:
            while True:
                chunk = transfer.read(chunk_size)
                if not chunk:
                    break
                transfer.write(chunk)
        else:
            while gate.has_more():
                chunk = transfer.read(gate.want_this_time(chunk_size))
                if not chunk:
                    LOGGER.debug(
                        "Source ended with %d unit(s) of the declared length outstanding",
                        gate.remaining,
                    )
                    break
                transfer.write_bounded(chunk, gate)
        transfer.flush()
    finally:
        close_quietly(transfer.source, "response stream")


def copy_bytes(
    source: BinaryIO,
    sink: BinaryIO,
    gate: Optional[LengthGate] = None,
    *,
    chunk_size: int = CHUNK_SIZE,
) -> None:
    """Copy raw bytes from ``source`` into ``sink``.

    With a gate, at most ``gate.remaining`` bytes are transferred. The source
    is always closed; the sink is flushed but left open.
    """

    _run_copy(ByteTransfer(source, sink), gate, chunk_size)


def copy_text(
    source: BinaryIO,
    sink: TextIO,
    charset: str,
    gate: Optional[LengthGate] = None,
    *,
    chunk_size: int = CHUNK_SIZE,
) -> None:
    """Decode ``source`` with ``charset`` and write the characters into ``sink``."""

    try:
        transfer = TextTransfer(source, sink, charset)
    except FetchError:
        close_quietly(source, "response stream")
        raise
    _run_copy(transfer, gate, chunk_size)


def gate_for(response: FetchedResponse, enforce_length: bool) -> Optional[LengthGate]:
    """Build a gate from the declared length when enforcement is requested."""

    if not enforce_length:
        return None
    declared = response.content_length
    if declared is None:
        return None
    return LengthGate.from_declared(declared)


def fetch_binary(response: FetchedResponse, sink: BinaryIO, enforce_length: bool) -> None:
    try:
        gate = gate_for(response, enforce_length)
    except ContentLengthError:
        response.close()
        raise
    copy_bytes(response.body, sink, gate)


def fetch_text(
    response: FetchedResponse,
    sink: TextIO,
    charset: str,
    enforce_length: bool,
) -> None:
    try:
        gate = gate_for(response, enforce_length)
    except ContentLengthError:
        response.close()
        raise
    copy_text(response.body, sink, charset, gate)


__all__ = [
    "ByteTransfer",
    "TextTransfer",
    "copy_bytes",
    "copy_text",
    "ensure_codec",
    "fetch_binary",
    "fetch_text",
    "gate_for",
]
