"""
Supermarket Monitor — Transport Selector

Decides how a product page is obtained:

- Direct transport: one plain HTTP GET (httpx).
- Rendered transport: full navigation through a Renderer (Playwright),
  with cookie-banner dismissal and a bounded wait for the price to appear.

Which transports run, and in which order, depends on the host's
ExecutionEnvironment and the configured TransportOrder. Each transport step
runs under the Retry Controller; when one transport is exhausted the next
planned one is tried.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

import httpx
import structlog

from src.config import TransportOrder, settings
from src.scraper import ContentHandle, ExecutionEnvironment, TransportKind
from src.scraper.errors import RendererError, TransportError
from src.scraper.identity import Identity, IdentityGenerator
from src.scraper.proxy import ProxyConfig, ProxyPool
from src.scraper.renderer import Renderer
from src.scraper.retry import RetryPolicy, with_retry

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# In-page scripts (rendered transport)
# ---------------------------------------------------------------------------

CONSENT_SELECTORS: tuple[str, ...] = (
    "#onetrust-accept-btn-handler",
    "button.cookie-accept",
    "#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll",
    "button[aria-label*='accept' i]",
    "button[aria-label*='συμφωνώ' i]",
    "button[aria-label*='αποδοχή' i]",
)

CONSENT_PHRASES: tuple[str, ...] = (
    "αποδοχή όλων",
    "αποδοχή",
    "συμφωνώ",
    "accept all",
    "accept",
    "allow all",
    "agree",
)

_CONSENT_SCRIPT = """
({selectors, phrases}) => {
  for (const s of selectors) {
    const el = document.querySelector(s);
    if (el) { el.click(); return {method: 'selector', target: s}; }
  }
  const pools = [
    Array.from(document.querySelectorAll('button')),
    Array.from(document.querySelectorAll('[role="button"], a, div, span')),
  ];
  for (const pool of pools) {
    for (const el of pool) {
      const text = (el.textContent || '').trim().toLowerCase();
      if (!text || text.length > 40) continue;
      const hit = phrases.find((p) => text.includes(p));
      if (hit) { el.click(); return {method: 'text', target: hit}; }
    }
  }
  return {method: null, target: null};
}
"""

PRICE_POPULATED_SCRIPT = """
() => {
  const el = document.querySelector('.main-price .price[data-price], .price[data-price]');
  if (el && (el.getAttribute('data-price') || '').trim()) return true;
  const meta = document.querySelector('meta[property="product:price:amount"]');
  if (meta && (meta.getAttribute('content') || '').trim()) return true;
  const shown = document.querySelector('[data-testid="product-price"]');
  return !!(shown && /\\d/.test(shown.textContent || ''));
}
"""

SERIALIZE_DOM_SCRIPT = "() => document.documentElement.outerHTML"

SCROLL_SCRIPT = "(distance) => window.scrollBy(0, distance)"


class ConsentOutcome(str, Enum):
    CLICKED_SELECTOR = "clicked_selector"
    CLICKED_TEXT = "clicked_text"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class ConsentResult:
    outcome: ConsentOutcome
    detail: str | None = None

    @property
    def clicked(self) -> bool:
        return self.outcome in (ConsentOutcome.CLICKED_SELECTOR, ConsentOutcome.CLICKED_TEXT)


async def dismiss_consent(renderer: Renderer, timeout_ms: int) -> ConsentResult:
    """
    Best-effort click on a cookie-consent button.

    Tries the known selectors first, then any clickable element whose text
    contains a Greek or English "accept" phrase. Never raises: failures are
    reported as ConsentOutcome.FAILED.
    """
    try:
        found = await asyncio.wait_for(
            renderer.evaluate_in_page(
                _CONSENT_SCRIPT,
                {"selectors": list(CONSENT_SELECTORS), "phrases": list(CONSENT_PHRASES)},
            ),
            timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError:
        return ConsentResult(ConsentOutcome.FAILED, f"timed out after {timeout_ms}ms")
    except RendererError as e:
        return ConsentResult(ConsentOutcome.FAILED, str(e))

    method = (found or {}).get("method")
    target = (found or {}).get("target")
    if method == "selector":
        return ConsentResult(ConsentOutcome.CLICKED_SELECTOR, target)
    if method == "text":
        return ConsentResult(ConsentOutcome.CLICKED_TEXT, target)
    return ConsentResult(ConsentOutcome.NOT_FOUND)


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class Transport(Protocol):
    kind: TransportKind

    async def fetch(self, url: str, identity: Identity) -> ContentHandle:
        ...


class DirectFetchTransport:
    """
    Plain HTTP GET with the attempt's identity.

    Usage:
        async with DirectFetchTransport() as direct:
            content = await direct.fetch(url, identity)
    """

    kind = TransportKind.DIRECT

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        proxy_pool: ProxyPool | None = None,
    ) -> None:
        self._timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self._proxy_pool = proxy_pool
        self.proxy: ProxyConfig | None = None
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> DirectFetchTransport:
        self._get_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            kwargs: dict[str, Any] = {"timeout": self._timeout, "follow_redirects": True}
            self.proxy = self._proxy_pool.choose() if self._proxy_pool is not None else None
            if self.proxy is not None:
                kwargs["proxy"] = self.proxy.for_httpx()
            self._client = httpx.AsyncClient(**kwargs)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str, identity: Identity) -> ContentHandle:
        headers = identity.as_headers()
        if identity.cookies:
            headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in identity.cookies.items())

        try:
            response = await self._get_client().get(url, headers=headers)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out: {e}", url=url) from e
        except httpx.RequestError as e:
            raise TransportError(f"Request failed: {e}", url=url) from e
        except httpx.InvalidURL as e:
            raise TransportError(f"Invalid URL: {e}", url=url) from e

        if not response.is_success:
            raise TransportError(
                f"HTTP {response.status_code}", url=url, status_code=response.status_code
            )

        logger.debug(
            "direct_fetch_ok",
            url=url,
            status_code=response.status_code,
            bytes=len(response.content),
            source="transport",
        )
        return ContentHandle(
            url=url,
            markup=response.text,
            transport=TransportKind.DIRECT,
            status_code=response.status_code,
        )


class RenderedTransport:
    """
    Full page navigation through a Renderer.

    The page is opened right before use and closed on every exit path,
    including failures, before fetch() returns.
    """

    kind = TransportKind.RENDERED

    def __init__(
        self,
        renderer: Renderer,
        navigation_timeout_ms: int | None = None,
        consent_timeout_ms: int | None = None,
        price_wait_timeout_ms: int | None = None,
        settle_delay_ms: int | None = None,
        scroll_after_load: bool | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.renderer = renderer
        self._navigation_timeout_ms = navigation_timeout_ms or settings.NAVIGATION_TIMEOUT_MS
        self._consent_timeout_ms = consent_timeout_ms or settings.CONSENT_TIMEOUT_MS
        self._price_wait_timeout_ms = price_wait_timeout_ms or settings.PRICE_WAIT_TIMEOUT_MS
        self._settle_delay_ms = settle_delay_ms if settle_delay_ms is not None else settings.SETTLE_DELAY_MS
        self._scroll = scroll_after_load if scroll_after_load is not None else settings.SCROLL_AFTER_LOAD
        self._sleep = sleep
        self.last_consent: ConsentResult | None = None
        self.last_price_ready: bool | None = None

    async def fetch(self, url: str, identity: Identity) -> ContentHandle:
        await self.renderer.open_page(identity)
        try:
            status = await self.renderer.goto(url, self._navigation_timeout_ms)

            self.last_consent = await dismiss_consent(self.renderer, self._consent_timeout_ms)
            logger.debug("consent_dismissal", url=url, outcome=self.last_consent.outcome.value,
                         detail=self.last_consent.detail, source="transport")

            self.last_price_ready = await self.renderer.wait_for_condition(
                PRICE_POPULATED_SCRIPT, self._price_wait_timeout_ms
            )
            if not self.last_price_ready:
                logger.info("price_wait_timed_out", url=url, timeout_ms=self._price_wait_timeout_ms,
                            source="transport")

            if self._scroll:
                await self.renderer.evaluate_in_page(SCROLL_SCRIPT, settings.SCROLL_DISTANCE_PX)
            if self._settle_delay_ms:
                await self._sleep(self._settle_delay_ms / 1000)

            markup = await self.renderer.evaluate_in_page(SERIALIZE_DOM_SCRIPT)
        finally:
            await self.renderer.close_page()

        return ContentHandle(
            url=url,
            markup=markup or "",
            transport=TransportKind.RENDERED,
            status_code=status,
        )


# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------


class TransportSelector:
    """
    Plans transports for one URL and runs each under the Retry Controller.

    ScraperRunner walks the plan; extraction decides whether the next
    transport is needed.

    Usage:
        selector = TransportSelector(direct, rendered, TransportOrder.DIRECT_THEN_RENDERED)
        for transport in selector.plan(env):
            content = await selector.fetch_with(transport, url)
    """

    def __init__(
        self,
        direct: Transport,
        rendered: Transport | None = None,
        order: TransportOrder | None = None,
        retry_policy: RetryPolicy | None = None,
        identity_generator: IdentityGenerator | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.direct = direct
        self.rendered = rendered
        self.order = order or settings.TRANSPORT_ORDER
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self._rng = rng or random.Random()
        self.identity_generator = identity_generator or IdentityGenerator(self._rng)
        self._sleep = sleep

    def plan(self, env: ExecutionEnvironment) -> list[Transport]:
        """Transports to attempt for this environment, in order."""
        if not env.rendering_available or self.rendered is None:
            return [self.direct]
        if self.order == TransportOrder.RENDERED_ONLY:
            return [self.rendered]
        if self.order == TransportOrder.RENDERED_THEN_DIRECT:
            return [self.rendered, self.direct]
        return [self.direct, self.rendered]

    async def fetch_with(self, transport: Transport, url: str) -> ContentHandle:
        """Run one transport under the Retry Controller."""
        return await with_retry(
            lambda identity: transport.fetch(url, identity),
            max_attempts=self.retry_policy.max_attempts,
            base_delay=self.retry_policy.base_delay,
            identity_factory=lambda: self.identity_generator.generate(url),
            rng=self._rng,
            sleep=self._sleep,
            label=transport.kind.value,
        )
