"""Configuration helpers and .env loading for urlfetch."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_ENV_FILES: tuple[Path, ...] = (
    Path(".env"),
    Path("~/.config/urlfetch/.env"),
)
ENV_FILE_VARIABLE = "URLFETCH_ENV_FILE"

DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_LOG_BACKUP_COUNT = 5

TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_files() -> list[Path]:
    candidates: list[Path] = []
    explicit = os.environ.get(ENV_FILE_VARIABLE, "").strip()
    if explicit:
        candidates.append(Path(explicit))
    candidates.extend(DEFAULT_ENV_FILES)
    return [path.expanduser() for path in candidates]


@lru_cache(maxsize=1)
def load_environment() -> dict[str, str]:
    """Load urlfetch settings from .env files once per process.

    A file named by ``URLFETCH_ENV_FILE`` is read first, then ``./.env``,
    then the per-user file. Variables already in the process environment
    always win, and earlier files win over later ones.
    """

    for path in _env_files():
        try:
            if path.is_file():
                load_dotenv(path, override=False)
        except OSError:
            continue
    return dict(os.environ)


def _flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "false").strip().lower() in TRUE_VALUES


def _optional_int(environ: Mapping[str, str], name: str) -> Optional[int]:
    value = environ.get(name, "").strip()
    if not value:
        return None
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer (got {value!r})") from exc
    if parsed < 0:
        raise ValueError(f"{name} must not be negative (got {parsed})")
    return parsed


def _int_or_default(environ: Mapping[str, str], name: str, default: int) -> int:
    parsed = _optional_int(environ, name)
    return default if parsed is None else parsed


@dataclass(frozen=True)
class FetchSettings:
    """Environment-provided defaults that the command line can override."""

    disable_cert_checks: bool = False
    max_redirects: Optional[int] = None
    log_max_bytes: int = DEFAULT_LOG_MAX_BYTES
    log_backup_count: int = DEFAULT_LOG_BACKUP_COUNT

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] | None = None) -> "FetchSettings":
        environ = os.environ if environ is None else environ
        return cls(
            disable_cert_checks=_flag(environ, "DISABLE_SSL_CERT_CHECKS"),
            max_redirects=_optional_int(environ, "URLFETCH_MAX_REDIRECTS"),
            log_max_bytes=_int_or_default(environ, "LOG_MAX_BYTES", DEFAULT_LOG_MAX_BYTES),
            log_backup_count=_int_or_default(environ, "LOG_BACKUP_COUNT", DEFAULT_LOG_BACKUP_COUNT),
        )


__all__ = ["DEFAULT_ENV_FILES", "ENV_FILE_VARIABLE", "FetchSettings", "load_environment"]
