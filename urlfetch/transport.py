"""Redirect-following HTTP request execution on top of ``requests``.

Transport-level redirect handling is disabled; the redirect state machine
below decides, per status code, whether and how to re-issue the request.
Each attempt is described by an immutable :class:`RequestPlan`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import BinaryIO, Optional, Union
from urllib.parse import urljoin, urlparse

import requests
from requests import Response

from . import USER_AGENT
from .gate import LengthGate
from .headers import Header, fold_headers, parse_header

LOGGER = logging.getLogger(__name__)

CHUNK_SIZE = 4096

METHODS = ("GET", "POST", "PUT")
BODY_METHODS = frozenset({"POST", "PUT"})

# Statuses re-issued against Location with the same method and body.
SAME_METHOD_REDIRECTS = frozenset({301, 302, 307})
# Status re-issued against Location as a bodiless GET.
SEE_OTHER = 303
REDIRECT_STATUSES = SAME_METHOD_REDIRECTS | {SEE_OTHER}

_HTTP_VERSIONS = {9: "HTTP/0.9", 10: "HTTP/1.0", 11: "HTTP/1.1", 20: "HTTP/2"}


class FetchError(RuntimeError):
    """Raised when a fetch cannot proceed."""


class ProtocolError(FetchError):
    """Raised when a URL or response does not fit the HTTP exchange."""


class UploadError(FetchError):
    """Raised when the request body source is unavailable."""


class TooManyRedirectsError(FetchError):
    """Raised when an opt-in redirect cap is exceeded."""


def close_quietly(stream: object, description: str) -> None:
    """Close ``stream``, logging rather than raising on failure."""

    close = getattr(stream, "close", None)
    if close is None:
        return
    try:
        close()
    except Exception:
        LOGGER.warning("Could not close %s", description, exc_info=True)


class _FileBody:
    """Iterable request body that forwards a file in bounded chunks.

    ``__len__`` lets ``requests`` send a ``Content-Length`` instead of
    switching to chunked transfer encoding.
    """

    def __init__(self, path: Path, size: int, chunk_size: int = CHUNK_SIZE) -> None:
        self._path = path
        self._size = size
        self._chunk_size = chunk_size

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[bytes]:
        handle = self._path.open("rb")
        try:
            while True:
                chunk = handle.read(self._chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            close_quietly(handle, f"upload file {self._path}")


@dataclass(frozen=True)
class UploadSource:
    """Request body taken from a file path or a literal string."""

    path: Optional[Path] = None
    data: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.path is None) == (self.data is None):
            raise ValueError("An upload needs exactly one of a file path or literal data.")

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "UploadSource":
        return cls(path=Path(path))

    @classmethod
    def from_string(cls, data: str) -> "UploadSource":
        return cls(data=data)

    def ensure_available(self) -> None:
        if self.path is not None and not self.path.is_file():
            raise UploadError(f"Upload file not found: {self.path}")

    def content_length(self) -> int:
        if self.path is not None:
            self.ensure_available()
            return self.path.stat().st_size
        assert self.data is not None
        return len(self.data.encode("utf-8"))

    def open_body(self) -> Union[bytes, _FileBody]:
        if self.path is not None:
            size = self.content_length()
            if size == 0:
                return b""
            return _FileBody(self.path, size)
        assert self.data is not None
        return self.data.encode("utf-8")


@dataclass(frozen=True)
class RequestPlan:
    """Everything needed to issue one request attempt."""

    url: str
    method: str = "GET"
    headers: tuple[Header, ...] = ()
    upload: Optional[UploadSource] = None
    content_type: Optional[str] = None

    def __post_init__(self) -> None:
        method = self.method.upper()
        if method not in METHODS:
            raise ValueError(f"Method must be one of {METHODS}")
        object.__setattr__(self, "method", method)
        object.__setattr__(self, "headers", tuple(self.headers))

    @property
    def sends_body(self) -> bool:
        return self.method in BODY_METHODS

    def follow(self, location: str, status: int) -> "RequestPlan":
        """Return the plan for the request that answers a redirect ``status``."""

        target = urljoin(self.url, location)
        if status == SEE_OTHER:
            return replace(self, url=target, method="GET", upload=None)
        if status in SAME_METHOD_REDIRECTS:
            return replace(self, url=target)
        raise ValueError(f"Status {status} is not a handled redirect")

    def request_headers(self) -> dict[str, str]:
        headers = fold_headers(self.headers)
        _set_header(headers, "User-Agent", USER_AGENT)
        if self.sends_body:
            if self.content_type is not None:
                _set_header(headers, "Content-Type", self.content_type)
            if self.upload is not None:
                _set_header(headers, "Content-Length", str(self.upload.content_length()))
        return headers


def _set_header(headers: dict[str, str], name: str, value: str) -> None:
    for existing in [key for key in headers if key.lower() == name.lower()]:
        del headers[existing]
    headers[name] = value


def ensure_http_url(url: str) -> None:
    scheme = urlparse(url).scheme.lower()
    if scheme not in {"http", "https"}:
        raise ProtocolError(f"Expected an HTTP(S) URL, got {url!r}")


def _status_line(response: Response) -> str:
    raw = response.raw
    version = _HTTP_VERSIONS.get(getattr(raw, "version", 11), "HTTP/1.1")
    reason = response.reason or ""
    return f"{version} {response.status_code} {reason}".rstrip()


def _header_pairs(response: Response) -> tuple[Header, ...]:
    raw_headers = getattr(response.raw, "headers", None)
    source = raw_headers if raw_headers is not None else response.headers
    return tuple(Header(name=str(name), value=str(value)) for name, value in source.items())


@dataclass(frozen=True)
class FetchedResponse:
    """Final response of a fetch, with the undecoded body stream."""

    url: str
    status_code: int
    status_line: str
    headers: tuple[Header, ...]
    body: BinaryIO = field(repr=False)

    @classmethod
    def from_requests(cls, response: Response) -> "FetchedResponse":
        raw = response.raw
        # A connection that ends before Content-Length is a short copy, not an error.
        if hasattr(raw, "enforce_content_length"):
            raw.enforce_content_length = False
        return cls(
            url=response.url,
            status_code=response.status_code,
            status_line=_status_line(response),
            headers=_header_pairs(response),
            body=raw,
        )

    def header_field_key(self, index: int) -> Optional[str]:
        """Name of the header at ``index``; index 0 is the status line and has none."""

        if index <= 0 or index > len(self.headers):
            return None
        return self.headers[index - 1].name

    def header_field(self, index: int) -> Optional[str]:
        if index == 0:
            return self.status_line
        if index < 0 or index > len(self.headers):
            return None
        return self.headers[index - 1].value

    def get(self, name: str) -> Optional[str]:
        """Value of the last header called ``name`` (case-insensitive)."""

        lowered = name.lower()
        for header in reversed(self.headers):
            if header.name.lower() == lowered:
                return header.value
        return None

    def get_all(self, name: str) -> list[str]:
        lowered = name.lower()
        return [header.value for header in self.headers if header.name.lower() == lowered]

    @property
    def content_length(self) -> Optional[str]:
        return self.get("Content-Length")

    def declared_length(self) -> Optional[int]:
        declared = self.content_length
        if declared is None:
            return None
        return LengthGate.from_declared(declared).remaining

    def close(self) -> None:
        close_quietly(self.body, f"response body for {self.url}")


class RedirectingRequestExecutor:
    """Issue a request and follow 301/302/303/307 responses by hand."""

    def __init__(
        self,
        session: requests.Session,
        *,
        verify: bool = True,
        max_redirects: Optional[int] = None,
    ) -> None:
        if max_redirects is not None and max_redirects < 0:
            raise ValueError("max_redirects must not be negative")
        self.session = session
        self.verify = verify
        self.max_redirects = max_redirects

    def _send(self, plan: RequestPlan) -> Response:
        headers = plan.request_headers()
        body = None
        if plan.sends_body and plan.upload is not None:
            body = plan.upload.open_body()
        LOGGER.info("%s %s", plan.method, plan.url)
        for name, value in headers.items():
            LOGGER.debug("Request header %(name)s: %(value)s", {"name": name, "value": value})
        return self.session.request(
            plan.method,
            plan.url,
            headers=headers,
            data=body,
            allow_redirects=False,
            stream=True,
            verify=self.verify,
        )

    def execute(self, plan: RequestPlan) -> tuple[FetchedResponse, int]:
        """Run ``plan`` to a non-redirect status.

        Returns the final response and the milliseconds elapsed between the
        first connection attempt and the arrival of the final headers.
        """

        ensure_http_url(plan.url)
        if plan.sends_body and plan.upload is not None:
            plan.upload.ensure_available()

        redirects = 0
        started = time.perf_counter()
        while True:
            response = self._send(plan)
            status = response.status_code
            if status not in REDIRECT_STATUSES:
                elapsed_ms = int((time.perf_counter() - started) * 1000)
                LOGGER.debug("Final status %s after %d redirect(s)", status, redirects)
                return FetchedResponse.from_requests(response), elapsed_ms

            location = response.headers.get("Location")
            response.close()
            if not location:
                raise ProtocolError(f"Redirect status {status} without a Location header")
            if self.max_redirects is not None and redirects >= self.max_redirects:
                raise TooManyRedirectsError(
                    f"Exceeded {self.max_redirects} redirect(s) while fetching {plan.url}"
                )
            redirects += 1
            plan = plan.follow(location, status)
            ensure_http_url(plan.url)
            LOGGER.info("Following %s redirect to %s", status, plan.url)


def create_session() -> requests.Session:
    """Return a session whose defaults do not interfere with raw body copying."""

    session = requests.Session()
    session.headers["User-Agent"] = USER_AGENT
    # Raw bodies are copied verbatim; ask for them unencoded.
    session.headers["Accept-Encoding"] = "identity"
    return session


def execute_with_redirects(
    plan: RequestPlan,
    *,
    session: Optional[requests.Session] = None,
    verify: bool = True,
    max_redirects: Optional[int] = None,
) -> tuple[FetchedResponse, int]:
    executor = RedirectingRequestExecutor(
        session or create_session(), verify=verify, max_redirects=max_redirects
    )
    return executor.execute(plan)


def build_plan(
    url: str,
    *,
    raw_headers: Sequence[str] = (),
    method: str = "GET",
    upload: Optional[UploadSource] = None,
    content_type: Optional[str] = None,
) -> RequestPlan:
    return RequestPlan(
        url=url,
        method=method,
        headers=tuple(parse_header(raw) for raw in raw_headers),
        upload=upload,
        content_type=content_type,
    )


__all__ = [
    "CHUNK_SIZE",
    "REDIRECT_STATUSES",
    "FetchError",
    "FetchedResponse",
    "ProtocolError",
    "RedirectingRequestExecutor",
    "RequestPlan",
    "TooManyRedirectsError",
    "UploadError",
    "UploadSource",
    "build_plan",
    "close_quietly",
    "create_session",
    "ensure_http_url",
    "execute_with_redirects",
]
