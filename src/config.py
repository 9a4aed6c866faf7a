"""
Supermarket Monitor — Configuration & Constants

Every timeout, retry bound and policy switch lives here. No hardcoded
values in scraping logic: the host reads these settings and passes the
relevant values down explicitly.

Usage:
    from src.config import settings
"""

from __future__ import annotations

from enum import Enum

from pydantic_settings import BaseSettings


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Currency(str, Enum):
    """Currencies a ScrapeResult may carry. The reference retailer prices in EUR."""
    EUR = "EUR"


class TransportOrder(str, Enum):
    """Which transports are attempted, and in what order, when rendering is available."""
    DIRECT_THEN_RENDERED = "direct_then_rendered"
    RENDERED_ONLY = "rendered_only"
    RENDERED_THEN_DIRECT = "rendered_then_direct"


class NormalizationPolicy(str, Enum):
    """What the price cascade does with a candidate that does not normalize."""
    FIRST_MATCH = "first_match"    # first non-empty text wins, even if unparseable
    FALL_THROUGH = "fall_through"  # keep cascading until a candidate normalizes


class LastNotifiedPolicy(str, Enum):
    """When the daily job persists last_notified_price on a watch item."""
    ON_NOTIFY = "on_notify"  # only when a notification was actually sent
    ALWAYS = "always"        # on every successful scrape


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Central configuration for Supermarket Monitor.

    Loads from environment variables with fallback defaults.
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # -----------------------------------------------------------------------
    # Notifications
    # -----------------------------------------------------------------------
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""

    # -----------------------------------------------------------------------
    # Database
    # -----------------------------------------------------------------------
    DATABASE_URL: str = "sqlite+aiosqlite:///grocery.db"

    # -----------------------------------------------------------------------
    # Execution environment
    # Serverless hosts cannot launch a browser; set to False there.
    # -----------------------------------------------------------------------
    RENDERING_AVAILABLE: bool = True
    BROWSER_HEADLESS: bool = True

    # -----------------------------------------------------------------------
    # Transport & extraction policy
    # -----------------------------------------------------------------------
    TRANSPORT_ORDER: TransportOrder = TransportOrder.DIRECT_THEN_RENDERED
    NORMALIZATION_POLICY: NormalizationPolicy = NormalizationPolicy.FIRST_MATCH
    FALLBACK_ON_MISS: bool = True  # try the next transport when extraction misses
    RESULT_CURRENCY: Currency = Currency.EUR

    # -----------------------------------------------------------------------
    # Retry Controller
    # Total tries per transport = SCRAPE_MAX_RETRIES + 1
    # -----------------------------------------------------------------------
    SCRAPE_MAX_RETRIES: int = 2
    SCRAPE_BASE_DELAY_SECONDS: float = 2.0

    # -----------------------------------------------------------------------
    # Throttle (daily job)
    # -----------------------------------------------------------------------
    SCRAPE_MIN_INTERVAL_SECONDS: float = 5.0
    SCRAPE_MAX_REQUESTS_PER_HOUR: int = 120

    # -----------------------------------------------------------------------
    # Timeouts
    # -----------------------------------------------------------------------
    HTTP_TIMEOUT_SECONDS: float = 20.0
    NAVIGATION_TIMEOUT_MS: int = 60000
    CONSENT_TIMEOUT_MS: int = 5000
    PRICE_WAIT_TIMEOUT_MS: int = 15000
    SETTLE_DELAY_MS: int = 2000  # extra time for client-side rendering
    SCROLL_AFTER_LOAD: bool = True
    SCROLL_DISTANCE_PX: int = 600

    # -----------------------------------------------------------------------
    # Network
    # -----------------------------------------------------------------------
    PROXY_URL: str = ""
    PROXY_URLS: str = ""  # comma-separated; one is picked at random per launch
    PROXY_USERNAME: str = ""
    PROXY_PASSWORD: str = ""
    ACCEPT_LANGUAGE: str = "el-GR,el;q=0.9,en;q=0.8"

    # -----------------------------------------------------------------------
    # Watchlist / notification policy
    # -----------------------------------------------------------------------
    LAST_NOTIFIED_POLICY: LastNotifiedPolicy = LastNotifiedPolicy.ON_NOTIFY

    # -----------------------------------------------------------------------
    # Scheduler
    # -----------------------------------------------------------------------
    DAILY_RUN_HOUR_UTC: int = 6
    SCHEDULER_CHECK_INTERVAL_SECONDS: int = 60

    # -----------------------------------------------------------------------
    # Admin API
    # -----------------------------------------------------------------------
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 3000
    PRICE_HISTORY_DEFAULT_LIMIT: int = 50

    LOG_LEVEL: str = "INFO"


# Singleton instance
settings = Settings()
