"""High-level orchestration of a single fetch."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from rich.console import Console

from .charset import resolve_charset
from .copier import ensure_codec, fetch_binary, fetch_text
from .headers import format_header_echo, format_timing
from .output import binary_sink, describe_target, resolve_target, text_sink
from .transport import (
    RedirectingRequestExecutor,
    UploadSource,
    build_plan,
    create_session,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchOptions:
    """Parsed options for one invocation."""

    url: str
    method: str = "GET"
    headers: Sequence[str] = ()
    upload: Optional[UploadSource] = None
    content_type: Optional[str] = None
    output: Optional[str] = None
    print_headers: bool = False
    timing: bool = False
    enforce_length: bool = False
    verify: bool = True
    max_redirects: Optional[int] = None


@dataclass(frozen=True)
class FetchOutcome:
    """Summary of a completed fetch."""

    url: str
    status_code: int
    target: str
    charset: Optional[str]
    elapsed_ms: int


def _echo(console: Console, line: str) -> None:
    console.print(line, markup=False, highlight=False, soft_wrap=True)


def run_fetch(options: FetchOptions, *, console: Optional[Console] = None) -> FetchOutcome:
    """Fetch ``options.url`` and write its body to the selected destination."""

    console = console or Console(stderr=True, highlight=False)
    plan = build_plan(
        options.url,
        raw_headers=options.headers,
        method=options.method,
        upload=options.upload,
        content_type=options.content_type,
    )
    if not options.verify:
        LOGGER.warning("TLS certificate verification is disabled.")

    with create_session() as session:
        executor = RedirectingRequestExecutor(
            session, verify=options.verify, max_redirects=options.max_redirects
        )
        response, elapsed_ms = executor.execute(plan)

        if options.print_headers:
            for line in format_header_echo(response.status_line, response.headers):
                _echo(console, line)
        if options.timing:
            _echo(console, format_timing(elapsed_ms))

        charset = resolve_charset(response)
        target = resolve_target(options.output, response.url)
        _echo(console, f"Saving to: `{describe_target(target)}`")
        LOGGER.debug(
            "Copying status %s body as %s",
            response.status_code,
            charset or "binary",
        )

        try:
            if charset is None:
                with binary_sink(target) as sink:
                    fetch_binary(response, sink, options.enforce_length)
            else:
                ensure_codec(charset)
                with text_sink(target, charset) as sink:
                    fetch_text(response, sink, charset, options.enforce_length)
        except Exception:
            response.close()
            raise

    return FetchOutcome(
        url=response.url,
        status_code=response.status_code,
        target=target,
        charset=charset,
        elapsed_ms=elapsed_ms,
    )


__all__ = ["FetchOptions", "FetchOutcome", "run_fetch"]
