"""Command-line interface for urlfetch."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Iterable, Optional

import requests
import urllib3
from rich.console import Console

from . import __version__
from .config import FetchSettings, load_environment
from .core import FetchOptions, run_fetch
from .gate import ContentLengthError
from .logging_utils import configure_logging
from .transport import FetchError, UploadSource


def _non_negative(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected an integer, got {value!r}") from exc
    if number < 0:
        raise argparse.ArgumentTypeError("Redirect limit must not be negative")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="urlfetch",
        description="Fetch a resource over HTTP(S), following redirects.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("url", help="URL to fetch")
    parser.add_argument(
        "-no-check-certificate",
        "--no-check-certificate",
        dest="no_check_certificate",
        action="store_true",
        help="Do not verify the server's TLS certificate",
    )
    parser.add_argument("-S", dest="print_headers", action="store_true", help="Include HTTP response headers in output")
    parser.add_argument(
        "-O",
        "--output-document",
        dest="output",
        metavar="FILE",
        help="Write to FILE instead of a name derived from the URL ('-' for stdout)",
    )

    upload = parser.add_mutually_exclusive_group()
    upload.add_argument("--post-file", metavar="FILE", help="File containing POST data")
    upload.add_argument("--post-data", metavar="DATA", help="String containing POST data")
    upload.add_argument("--put-file", metavar="FILE", help="File containing PUT data")
    upload.add_argument("--put-data", metavar="DATA", help="String containing PUT data")

    parser.add_argument("--mime", dest="content_type", metavar="MIMETYPE", help="Content-Type for the request body")
    parser.add_argument(
        "--enforce-content-length",
        action="store_true",
        help="Drop all response data after the end of the response's Content-Length",
    )
    parser.add_argument("--timing", action="store_true", help="Print the time taken to receive response headers")
    parser.add_argument(
        "--header",
        dest="headers",
        action="append",
        default=[],
        metavar="'Name: Value'",
        help="Add an HTTP request header (may be repeated)",
    )
    parser.add_argument(
        "--max-redirect",
        dest="max_redirects",
        type=_non_negative,
        help="Give up after this many redirects (default: unlimited)",
    )
    parser.add_argument("--log-json", action="store_true", help="Emit structured JSON logs to the log file")
    parser.add_argument("--log-file", help="Write logs to the specified path")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", action="store_true", help="Enable debug logging")
    verbosity.add_argument("--quiet", action="store_true", help="Reduce logging output")
    return parser


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(None if argv is None else list(argv))


def configure_cli_logging(args: argparse.Namespace, settings: Optional[FetchSettings] = None) -> None:
    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    settings = settings or FetchSettings()
    configure_logging(
        level=level,
        json_logs=args.log_json,
        logfile=args.log_file,
        max_bytes=settings.log_max_bytes,
        backup_count=settings.log_backup_count,
    )


def _upload_from_args(args: argparse.Namespace) -> tuple[str, Optional[UploadSource]]:
    if args.post_file is not None:
        return "POST", UploadSource.from_file(args.post_file)
    if args.post_data is not None:
        return "POST", UploadSource.from_string(args.post_data)
    if args.put_file is not None:
        return "PUT", UploadSource.from_file(args.put_file)
    if args.put_data is not None:
        return "PUT", UploadSource.from_string(args.put_data)
    return "GET", None


def options_from_args(args: argparse.Namespace, settings: FetchSettings) -> FetchOptions:
    method, upload = _upload_from_args(args)
    max_redirects = args.max_redirects
    if max_redirects is None:
        max_redirects = settings.max_redirects
    return FetchOptions(
        url=args.url,
        method=method,
        headers=tuple(args.headers),
        upload=upload,
        content_type=args.content_type,
        output=args.output,
        print_headers=args.print_headers,
        timing=args.timing,
        enforce_length=args.enforce_content_length,
        verify=not (args.no_check_certificate or settings.disable_cert_checks),
        max_redirects=max_redirects,
    )


def main(argv: Optional[Iterable[str]] = None) -> int:
    load_environment()
    args = parse_args(argv)
    logger = logging.getLogger("urlfetch.cli")

    try:
        settings = FetchSettings.from_environment()
    except ValueError as exc:
        configure_cli_logging(args)
        logger.error("Invalid configuration: %s", exc)
        return 1

    configure_cli_logging(args, settings)

    options = options_from_args(args, settings)
    console = Console(stderr=True, highlight=False)
    try:
        outcome = run_fetch(options, console=console)
    except (
        FetchError,
        ContentLengthError,
        requests.RequestException,
        urllib3.exceptions.HTTPError,
        OSError,
    ) as exc:
        logger.error("Fetch failed: %s", exc, extra={"url": options.url})
        return 1

    logger.debug(
        "Fetched %s (status %s) into %s in %sms",
        outcome.url,
        outcome.status_code,
        outcome.target,
        outcome.elapsed_ms,
    )
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
