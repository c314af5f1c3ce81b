"""Exception taxonomy shared by the orchestrator and the page agent."""

from __future__ import annotations


class CrawlerError(RuntimeError):
    """Base class for failures raised inside the enrichment pipeline."""


class MissingElement(CrawlerError):
    """An expected DOM anchor is absent from the current page."""

    def __init__(self, selector: str, detail: str | None = None) -> None:
        self.selector = selector
        message = detail or f"Element not found: {selector}"
        super().__init__(message)


class WaitTimeout(CrawlerError):
    """A bounded wait exceeded its deadline."""

    def __init__(self, description: str, timeout: float) -> None:
        self.description = description
        self.timeout = timeout
        super().__init__(f"Timeout waiting for {description} after {timeout:.1f}s")


class NavigationMismatch(CrawlerError):
    """A navigation landed on a URL matching neither expected shape."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Unexpected navigation target: {url}")


class InvalidState(CrawlerError):
    """Pipeline index or record data is inconsistent."""


class RecordFormatError(ValueError):
    """An imported records file cannot be interpreted."""


__all__ = [
    "CrawlerError",
    "InvalidState",
    "MissingElement",
    "NavigationMismatch",
    "RecordFormatError",
    "WaitTimeout",
]
