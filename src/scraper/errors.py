"""
Supermarket Monitor — Scraper exceptions

Only transport-level problems are exceptions. A page that was fetched but
yielded no name/price is a result (None from the assembler), not an error.
"""

from __future__ import annotations


class ScraperError(Exception):
    """Base class for scraper failures."""


class TransportError(ScraperError):
    """Network failure, timeout or non-success HTTP status while fetching a page."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class RendererError(TransportError):
    """The page-rendering engine failed to open, navigate or close a page."""


class RetryExhausted(ScraperError):
    """Every allowed attempt failed; carries the terminal error and the ones before it."""

    def __init__(self, last_error: BaseException, attempts: int, errors: list[BaseException] | None = None):
        self.last_error = last_error
        self.attempts = attempts
        self.errors = list(errors or [last_error])
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
