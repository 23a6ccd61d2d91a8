"""urlfetch package: a small command-line HTTP resource fetcher."""

from __future__ import annotations

__all__ = ["__version__", "USER_AGENT"]

# Semantic version for package consumers.
__version__ = "0.9.0"

# Sent on every request, including re-issued redirects.
USER_AGENT = f"urlfetch/{__version__}"
