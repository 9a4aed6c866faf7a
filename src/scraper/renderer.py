"""
Supermarket Monitor — Page-Rendering Adapter

The rendered transport only talks to the narrow Renderer protocol below.
PlaywrightRenderer is the one concrete adapter; any automation engine that
implements the same five methods can replace it.

A renderer holds at most one open page at a time, matching the sequential
scraping model.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import structlog
from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.scraper.errors import RendererError
from src.scraper.identity import Identity
from src.scraper.proxy import ProxyConfig, ProxyPool

logger = structlog.get_logger(__name__)


@runtime_checkable
class Renderer(Protocol):
    """Black-box page-rendering capability used by the rendered transport."""

    async def open_page(self, identity: Identity | None = None) -> None:
        ...

    async def goto(self, url: str, timeout_ms: int) -> int | None:
        ...

    async def evaluate_in_page(self, script: str, arg: Any = None) -> Any:
        ...

    async def wait_for_condition(self, expression: str, timeout_ms: int) -> bool:
        ...

    async def close_page(self) -> None:
        ...


class PlaywrightRenderer:
    """
    Renderer backed by Playwright Chromium.

    The browser is launched lazily on the first open_page() and reused until
    aclose(). Each open_page() gets its own BrowserContext so identities
    (user agent, headers, cookies) never leak between attempts.

    Usage:
        async with PlaywrightRenderer() as renderer:
            await renderer.open_page(identity)
            ...
            await renderer.close_page()
    """

    def __init__(
        self,
        headless: bool = True,
        proxy_pool: ProxyPool | None = None,
        locale: str = "el-GR",
    ) -> None:
        self._headless = headless
        self._proxy_pool = proxy_pool
        self.proxy: ProxyConfig | None = None
        self._locale = locale
        self._playwright: Any = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._pending_cookies: dict[str, str] = {}

    async def __aenter__(self) -> PlaywrightRenderer:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    def launch_options(self) -> dict[str, Any]:
        """Keyword arguments for chromium.launch(). Picks a fresh proxy from the pool."""
        self.proxy = self._proxy_pool.choose() if self._proxy_pool is not None else None
        options: dict[str, Any] = {"headless": self._headless}
        if self.proxy is not None:
            options["proxy"] = self.proxy.for_playwright()
        return options

    async def _ensure_browser(self) -> Browser:
        if self._browser is not None:
            return self._browser
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(**self.launch_options())
        except PlaywrightError as e:
            raise RendererError(f"Browser launch failed: {e}") from e
        logger.info(
            "renderer_browser_launched",
            headless=self._headless,
            proxy=self.proxy.server if self.proxy else None,
            proxy_authenticated=bool(self.proxy and self.proxy.authenticated),
            source="renderer",
        )
        return self._browser

    def _require_page(self) -> Page:
        if self._page is None:
            raise RendererError("No page is open")
        return self._page

    async def open_page(self, identity: Identity | None = None) -> None:
        if self._page is not None:
            raise RendererError("A page is already open")
        browser = await self._ensure_browser()
        context_kwargs: dict[str, Any] = {"locale": self._locale}
        if identity is not None:
            extra = {k: v for k, v in identity.headers.items() if k.lower() != "user-agent"}
            context_kwargs["user_agent"] = identity.user_agent
            context_kwargs["extra_http_headers"] = extra
            if identity.profile is not None and identity.profile.mobile:
                context_kwargs["is_mobile"] = True
            self._pending_cookies = dict(identity.cookies)
        try:
            self._context = await browser.new_context(**context_kwargs)
            self._page = await self._context.new_page()
        except PlaywrightError as e:
            await self._discard_context()
            raise RendererError(f"Could not open page: {e}") from e

    async def goto(self, url: str, timeout_ms: int) -> int | None:
        page = self._require_page()
        try:
            if self._pending_cookies and self._context is not None:
                await self._context.add_cookies(
                    [{"name": k, "value": v, "url": url} for k, v in self._pending_cookies.items()]
                )
            response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise RendererError(f"Navigation timed out after {timeout_ms}ms", url=url) from e
        except PlaywrightError as e:
            raise RendererError(f"Navigation failed: {e}", url=url) from e

        status = response.status if response is not None else None
        if status is not None and status >= 400:
            raise RendererError(f"Navigation returned HTTP {status}", url=url, status_code=status)
        return status

    async def evaluate_in_page(self, script: str, arg: Any = None) -> Any:
        page = self._require_page()
        try:
            if arg is None:
                return await page.evaluate(script)
            return await page.evaluate(script, arg)
        except PlaywrightError as e:
            raise RendererError(f"Page evaluation failed: {e}") from e

    async def wait_for_condition(self, expression: str, timeout_ms: int) -> bool:
        page = self._require_page()
        try:
            await page.wait_for_function(expression, timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            raise RendererError(f"Waiting for condition failed: {e}") from e

    async def close_page(self) -> None:
        if self._page is None and self._context is None:
            return
        try:
            if self._page is not None:
                await self._page.close()
        except PlaywrightError as e:
            raise RendererError(f"Could not close page: {e}") from e
        finally:
            self._page = None
            await self._discard_context()

    async def _discard_context(self) -> None:
        context, self._context = self._context, None
        self._pending_cookies = {}
        if context is not None:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.warning("renderer_context_close_failed", error=str(e), source="renderer")

    async def aclose(self) -> None:
        """Close any open page and shut the browser down."""
        try:
            await self.close_page()
        except RendererError as e:
            logger.warning("renderer_close_page_failed", error=str(e), source="renderer")
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
