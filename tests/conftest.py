import io
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class TrackingStream(io.BytesIO):
    """BytesIO that remembers being closed and can serve short reads."""

    def __init__(self, data: bytes = b"", *, max_read: int | None = None, fail_close: bool = False):
        super().__init__(data)
        self.max_read = max_read
        self.fail_close = fail_close
        self.close_calls = 0
        self.requested: list[int] = []

    def read(self, size: int | None = -1) -> bytes:
        if size is not None and size >= 0:
            self.requested.append(size)
            if self.max_read is not None:
                size = min(size, self.max_read)
        return super().read(size)

    def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise OSError("close failed")
        super().close()


@pytest.fixture
def tracking_stream():
    return TrackingStream


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    monkeypatch.delenv("DISABLE_SSL_CERT_CHECKS", raising=False)
    for name in ("URLFETCH_MAX_REDIRECTS", "URLFETCH_ENV_FILE", "LOG_MAX_BYTES", "LOG_BACKUP_COUNT"):
        monkeypatch.delenv(name, raising=False)
    yield
