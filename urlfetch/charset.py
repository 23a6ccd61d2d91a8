"""Charset detection from response ``Content-Type`` metadata."""

from __future__ import annotations

from typing import Optional, Protocol, Union

__all__ = ["DEFAULT_TEXT_CHARSET", "resolve_charset"]

# HTTP/1.1 (RFC 2616, section 3.7.1) default for unlabelled text/* bodies.
DEFAULT_TEXT_CHARSET = "ISO-8859-1"

CHARSET_MARKER = "; charset="


class _HasHeaders(Protocol):
    def get(self, name: str) -> Optional[str]: ...


def _content_type(source: Union[_HasHeaders, str, None]) -> Optional[str]:
    if source is None or isinstance(source, str):
        return source
    return source.get("Content-Type")


def resolve_charset(source: Union[_HasHeaders, str, None]) -> Optional[str]:
    """Return the charset for a response (or a raw Content-Type value).

    ``None`` means the body should be treated as opaque binary.
    """

    content_type = _content_type(source)
    if content_type is None:
        return None

    position = content_type.lower().find(CHARSET_MARKER)
    if position >= 0:
        charset = content_type[position + len(CHARSET_MARKER) :]
        charset = charset.split(";", 1)[0].strip().strip("\"'")
        if charset:
            return charset
        return None

    if content_type.strip().lower().startswith("text/"):
        return DEFAULT_TEXT_CHARSET
    return None
