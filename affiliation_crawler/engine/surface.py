"""Browsing-surface control built on Playwright's async API."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

import structlog

from ..config import BrowserConfig
from ..infra import UserAgentPool

NavigationCallback = Callable[[int, str], None]


@dataclass(slots=True)
class SurfaceHandle:
    """Reference to one browsing surface (a Playwright page)."""

    surface_id: int
    url: str
    page: Any = field(repr=False, default=None)


class SurfaceController(Protocol):
    """Operations the orchestrator needs from the hosting browser."""

    async def query(self, url_pattern: str) -> list[SurfaceHandle]:
        """Return open surfaces whose URL matches the glob ``url_pattern``."""

    async def create_or_focus(self, url: str) -> SurfaceHandle:
        """Bring a surface showing ``url`` to the front, opening one if needed."""

    async def goto(self, surface_id: int, url: str) -> SurfaceHandle | None:
        """Load ``url`` in an existing surface; ``None`` when it has been closed."""

    def subscribe(self, surface_id: int, callback: NavigationCallback) -> None:
        """Invoke ``callback(surface_id, url)`` whenever the surface finishes loading."""


class PlaywrightSurfaceController:
    """Surface controller operating on the pages of one ``BrowserContext``."""

    def __init__(
        self,
        context: Any,
        navigation_timeout: int = 30000,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self._context = context
        self._navigation_timeout = navigation_timeout
        self._pages: dict[int, Any] = {}
        self._ids: dict[int, int] = {}
        self._subscribed: set[int] = set()
        self._next_id = 1
        self.logger = logger or structlog.get_logger("affiliation_crawler.surface")

    def _register(self, page: Any) -> SurfaceHandle:
        key = id(page)
        surface_id = self._ids.get(key)
        if surface_id is None:
            surface_id = self._next_id
            self._next_id += 1
            self._ids[key] = surface_id
            self._pages[surface_id] = page
            page.on("close", lambda *_: self._forget(surface_id))
        return SurfaceHandle(surface_id=surface_id, url=page.url, page=page)

    def _forget(self, surface_id: int) -> None:
        page = self._pages.pop(surface_id, None)
        if page is not None:
            self._ids.pop(id(page), None)
        self._subscribed.discard(surface_id)
        self.logger.debug("surface_closed", surface_id=surface_id)

    async def query(self, url_pattern: str) -> list[SurfaceHandle]:
        handles = []
        for page in self._context.pages:
            if page.is_closed():
                continue
            if fnmatch.fnmatchcase(page.url, url_pattern):
                handles.append(self._register(page))
        return handles

    async def create_or_focus(self, url: str) -> SurfaceHandle:
        for page in self._context.pages:
            if not page.is_closed() and page.url.startswith(url):
                await page.bring_to_front()
                return self._register(page)
        page = await self._context.new_page()
        page.set_default_navigation_timeout(self._navigation_timeout)
        await page.goto(url, wait_until="load")
        self.logger.info("surface_opened", url=url)
        return self._register(page)

    async def goto(self, surface_id: int, url: str) -> SurfaceHandle | None:
        page = self._pages.get(surface_id)
        if page is None or page.is_closed():
            return None
        await page.goto(url, wait_until="load")
        self.logger.debug("surface_reused", surface_id=surface_id, url=url)
        return SurfaceHandle(surface_id=surface_id, url=page.url, page=page)

    def subscribe(self, surface_id: int, callback: NavigationCallback) -> None:
        page = self._pages.get(surface_id)
        if page is None:
            raise KeyError(f"Unknown surface: {surface_id}")
        if surface_id in self._subscribed:
            return
        self._subscribed.add(surface_id)
        page.on("load", lambda loaded: callback(surface_id, loaded.url))


class BrowserRuntime:
    """Own the Playwright driver, browser and context for one CLI run."""

    def __init__(self, config: BrowserConfig, ua_pool: UserAgentPool | None = None) -> None:
        self.config = config
        self.ua_pool = ua_pool
        self._playwright = None
        self._browser = None
        self._context = None

    async def __aenter__(self) -> PlaywrightSurfaceController:
        try:
            from playwright.async_api import async_playwright
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "Browser support requires installing the 'playwright' package."
            ) from exc

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.config.headless)
        width, height = self.config.viewport_size
        user_agent = self.ua_pool.get() if self.ua_pool else None
        self._context = await self._browser.new_context(
            user_agent=user_agent,
            locale=self.config.locale,
            viewport={"width": width, "height": height},
        )
        if self.config.extra_headers:
            await self._context.set_extra_http_headers(self.config.extra_headers)
        return PlaywrightSurfaceController(self._context, self.config.navigation_timeout)

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


__all__ = [
    "BrowserRuntime",
    "NavigationCallback",
    "PlaywrightSurfaceController",
    "SurfaceController",
    "SurfaceHandle",
]
