"""
Supermarket Monitor — Scraper Runner

Orchestrates one extraction call:

1. Plan transports for the host's ExecutionEnvironment
2. Fetch with retry + identity rotation (per transport)
3. Cascade extraction over the returned markup
4. Normalize and assemble the result

When a transport's content yields no result and FALLBACK_ON_MISS is set,
the next planned transport gets a go. Strictly sequential, no internal
parallelism.
"""

from __future__ import annotations

import random
from typing import Any

import structlog

from src.config import Currency, NormalizationPolicy, TransportOrder, settings
from src.scraper import ExecutionEnvironment, ScrapeResult
from src.scraper.assembler import assemble, diagnose
from src.scraper.errors import RetryExhausted
from src.scraper.extraction import extract
from src.scraper.identity import IdentityGenerator
from src.scraper.proxy import ProxyPool
from src.scraper.renderer import PlaywrightRenderer, Renderer
from src.scraper.retry import RetryPolicy
from src.scraper.transport import DirectFetchTransport, RenderedTransport, TransportSelector

logger = structlog.get_logger(__name__)


class ScraperRunner:
    """
    Runs the transport + extraction pipeline for a product URL.

    Usage:
        async with ScraperRunner.from_settings() as runner:
            result = await runner.scrape(url, ExecutionEnvironment(rendering_available=True))
    """

    def __init__(
        self,
        selector: TransportSelector,
        normalization_policy: NormalizationPolicy | None = None,
        fallback_on_miss: bool | None = None,
        currency: Currency | None = None,
    ) -> None:
        self.selector = selector
        self.normalization_policy = normalization_policy or settings.NORMALIZATION_POLICY
        self.fallback_on_miss = settings.FALLBACK_ON_MISS if fallback_on_miss is None else fallback_on_miss
        self.currency = currency or settings.RESULT_CURRENCY
        self._closeables: list[Any] = []

    @classmethod
    def from_settings(
        cls,
        renderer: Renderer | None = None,
        order: TransportOrder | None = None,
        retry_policy: RetryPolicy | None = None,
        rng: random.Random | None = None,
    ) -> ScraperRunner:
        """
        Wire the default transports around one proxy pool.

        A PlaywrightRenderer is only built when rendering is enabled.
        """
        rng = rng or random.Random()
        proxy_pool = ProxyPool.from_settings(rng)
        direct = DirectFetchTransport(proxy_pool=proxy_pool)
        closeables: list[Any] = [direct]

        rendered: RenderedTransport | None = None
        if renderer is None and settings.RENDERING_AVAILABLE:
            renderer = PlaywrightRenderer(
                headless=settings.BROWSER_HEADLESS,
                proxy_pool=proxy_pool,
            )
            closeables.append(renderer)
        if renderer is not None:
            rendered = RenderedTransport(renderer)

        selector = TransportSelector(
            direct,
            rendered,
            order=order,
            retry_policy=retry_policy,
            identity_generator=IdentityGenerator(rng),
            rng=rng,
        )
        runner = cls(selector)
        runner._closeables = closeables
        return runner

    async def __aenter__(self) -> ScraperRunner:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for resource in reversed(self._closeables):
            await resource.aclose()
        self._closeables = []

    async def scrape(self, url: str, env: ExecutionEnvironment) -> ScrapeResult | None:
        """
        Determine the current name and price of the product at `url`.

        Args:
            url: Product page URL.
            env: Host capabilities; without rendering only direct fetch is used.

        Returns:
            ScrapeResult, or None when the page was fetched but no valid
            name/price could be extracted.

        Raises:
            RetryExhausted: every planned transport failed at the transport level.
        """
        plan = self.selector.plan(env)
        last_exhausted: RetryExhausted | None = None
        fetched_any = False

        for index, transport in enumerate(plan):
            has_next = index < len(plan) - 1
            logger.info(
                "scraper_trying_transport",
                url=url,
                transport=transport.kind.value,
                source="scraper_runner",
            )
            try:
                content = await self.selector.fetch_with(transport, url)
            except RetryExhausted as e:
                last_exhausted = e
                logger.warning(
                    "transport_exhausted",
                    url=url,
                    transport=transport.kind.value,
                    attempts=e.attempts,
                    error=str(e.last_error),
                    source="scraper_runner",
                )
                continue

            fetched_any = True
            outcome = extract(content, self.normalization_policy)
            result = assemble(
                outcome.product,
                outcome.price,
                currency=self.currency,
                url=url,
                transport=content.transport,
            )
            if result is not None:
                logger.info(
                    "scraper_success",
                    url=url,
                    transport=content.transport.value,
                    product=result.product,
                    price=str(result.price),
                    price_strategy=result.price_strategy,
                    source="scraper_runner",
                )
                return result

            logger.warning(
                "scraper_no_result",
                url=url,
                transport=content.transport.value,
                reason=diagnose(outcome.product, outcome.price).value,
                strategies_tried=outcome.tried,
                rejected_prices=[m.text[:40] for m in outcome.rejected],
                falling_back=self.fallback_on_miss and has_next,
                source="scraper_runner",
            )
            if not (self.fallback_on_miss and has_next):
                return None

        if not fetched_any and last_exhausted is not None:
            raise last_exhausted
        return None
