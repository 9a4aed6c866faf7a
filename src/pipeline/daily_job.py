"""
Supermarket Monitor — Daily Job

Drives the scraper over every active watch item, one at a time:

1. Throttle (minimum interval + hourly cap)
2. Scrape (transport selection, retry, extraction)
3. Append the price observation
4. Notify when a reason applies
5. Persist last_notified_price per LAST_NOTIFIED_POLICY

A failing item is logged and skipped; it never aborts the batch. When
anything was captured a summary message goes out at the end.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import LastNotifiedPolicy, settings
from src.models.repository import WatchlistRepository
from src.notify.telegram import TelegramNotifier, format_batch_summary, format_price_alert
from src.scraper import ExecutionEnvironment, ScrapeResult
from src.scraper.anti_detect import ThrottleState
from src.scraper.errors import RetryExhausted
from src.scraper.runner import ScraperRunner

logger = structlog.get_logger(__name__)

REASON_FIRST_CAPTURE = "first capture"
REASON_TARGET_MET = "target met"
REASON_PRICE_DROP = "price drop"


@dataclass
class JobSummary:
    """Counters for one run_once() call."""
    checked: int = 0    # items a scrape was attempted for
    captured: int = 0   # observations written
    notified: int = 0   # alerts delivered
    failed: int = 0     # transports exhausted or scrape raised
    missed: int = 0     # page fetched, no valid name/price
    throttled: int = 0  # skipped because the hourly cap was hit
    products: list[str] = field(default_factory=list)  # names captured, in scrape order

    def as_dict(self) -> dict:
        return {
            "checked": self.checked,
            "captured": self.captured,
            "notified": self.notified,
            "failed": self.failed,
            "missed": self.missed,
            "throttled": self.throttled,
            "products": list(self.products),
        }


def notification_reasons(
    price: Decimal,
    target_price: Decimal | None,
    last_notified_price: Decimal | None,
) -> list[str]:
    """
    Why a fresh price is worth an alert. Empty list means stay quiet.

    With no prior notification the only reason is "first capture".
    """
    if last_notified_price is None:
        return [REASON_FIRST_CAPTURE]

    reasons: list[str] = []
    if target_price is not None and price <= target_price:
        reasons.append(REASON_TARGET_MET)
    if price < last_notified_price:
        reasons.append(REASON_PRICE_DROP)
    return reasons


class DailyJob:
    """
    One pass over the active watchlist.

    The runner, notifier and throttle are owned by the caller and passed
    in, so a single browser and Bot session serve the whole batch.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        runner: ScraperRunner,
        notifier: TelegramNotifier,
        env: ExecutionEnvironment | None = None,
        throttle: ThrottleState | None = None,
        last_notified_policy: LastNotifiedPolicy | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.runner = runner
        self.notifier = notifier
        self.env = env or ExecutionEnvironment(rendering_available=settings.RENDERING_AVAILABLE)
        self.throttle = throttle or ThrottleState.from_settings()
        self.last_notified_policy = last_notified_policy or settings.LAST_NOTIFIED_POLICY

    async def run_once(self) -> JobSummary:
        summary = JobSummary()

        async with self.session_factory() as session:
            repo = WatchlistRepository(session)
            items = await repo.list_active_watch_items()
            logger.info(
                "daily_job_started",
                active_items=len(items),
                rendering_available=self.env.rendering_available,
                last_notified_policy=self.last_notified_policy.value,
                source="daily_job",
            )

            for position, item in enumerate(items):
                if not await self.throttle.acquire():
                    summary.throttled = len(items) - position
                    logger.warning(
                        "daily_job_throttled",
                        remaining=summary.throttled,
                        source="daily_job",
                    )
                    break

                summary.checked += 1
                try:
                    result = await self.runner.scrape(item.product_url, self.env)
                except RetryExhausted as e:
                    summary.failed += 1
                    logger.error(
                        "daily_job_item_failed",
                        id=item.id,
                        product_url=item.product_url,
                        attempts=e.attempts,
                        error=str(e.last_error),
                        error_type=type(e.last_error).__name__,
                        source="daily_job",
                    )
                    continue
                except Exception as e:
                    summary.failed += 1
                    logger.error(
                        "daily_job_item_error",
                        id=item.id,
                        product_url=item.product_url,
                        error=str(e),
                        error_type=type(e).__name__,
                        source="daily_job",
                    )
                    continue

                if result is None:
                    summary.missed += 1
                    continue

                await self._record(repo, item.id, item.product_url, item.target_price,
                                   item.last_notified_price, result, summary)

        if summary.captured > 0:
            await self.notifier.send(format_batch_summary(summary.captured))

        logger.info("daily_job_complete", **summary.as_dict(), source="daily_job")
        return summary

    async def _record(
        self,
        repo: WatchlistRepository,
        item_id: int,
        product_url: str,
        target_price: Decimal | None,
        last_notified_price: Decimal | None,
        result: ScrapeResult,
        summary: JobSummary,
    ) -> None:
        await repo.append_price_observation(
            result.product, result.price, result.currency, product_url=product_url
        )
        summary.captured += 1
        summary.products.append(result.product)

        reasons = notification_reasons(result.price, target_price, last_notified_price)
        delivered = False
        if reasons:
            delivered = await self.notifier.send(
                format_price_alert(
                    result.product, result.price, result.currency.value, product_url, reasons
                )
            )
            if delivered:
                summary.notified += 1

        logger.info(
            "daily_job_item_captured",
            id=item_id,
            product=result.product,
            price=str(result.price),
            reasons=reasons,
            delivered=delivered,
            source="daily_job",
        )

        if self.last_notified_policy == LastNotifiedPolicy.ALWAYS or delivered:
            await repo.update_last_notified_price(item_id, result.price)


async def run_daily_job(session_factory: async_sessionmaker[AsyncSession]) -> JobSummary:
    """Build the runner and notifier from settings and run one pass."""
    env = ExecutionEnvironment(rendering_available=settings.RENDERING_AVAILABLE)
    async with ScraperRunner.from_settings() as runner:
        async with TelegramNotifier() as notifier:
            job = DailyJob(session_factory, runner, notifier, env=env)
            return await job.run_once()
