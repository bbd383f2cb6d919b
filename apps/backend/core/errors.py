"""
Error taxonomy for the scraping engine.

Executors and extractors raise these; the orchestrator catches them at the
per-attempt boundary and records them as failed attempts.
"""
from typing import Any, Dict, Optional


class ScrapeError(Exception):
    """Base class for every failure the scraping engine knows about."""

    def __init__(self, message: str, debug: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.debug = debug or {}

    def __str__(self):
        return self.message


class StrategyExhausted(ScrapeError):
    """All configured strategies for a URL failed."""


class FetchTimeout(ScrapeError):
    """Request or navigation exceeded its timeout."""


class FetchNetworkError(ScrapeError):
    """Connection-level failure (DNS, reset, refused)."""


class FetchHttpError(ScrapeError):
    """Non-success HTTP status after retries."""

    def __init__(self, status: int, message: Optional[str] = None, debug: Optional[Dict[str, Any]] = None):
        super().__init__(message or f"HTTP {status}", debug)
        self.status = status


class FetchBlocked(ScrapeError):
    """Page content indicates bot blocking or a captcha."""


class BrowserFetchError(ScrapeError):
    """Browser executor failed after all of its tries."""


class ShellContentError(ScrapeError):
    """HTML is a client-rendered shell without the job content."""


class ExtractionIncomplete(ScrapeError):
    """Parser could not find a title or company/description."""
