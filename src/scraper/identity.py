"""
Supermarket Monitor — Identity Generator

Builds one coherent browser identity (user agent, headers, cookies) per
fetch attempt. Client-hint headers are derived from the chosen user-agent
profile so they never contradict it; a handful of optional headers are
randomized so consecutive attempts do not share a fingerprint.

Pass a seeded random.Random for reproducible identities in tests.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping
from urllib.parse import urlparse

import structlog

from src.config import settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class UserAgentProfile:
    user_agent: str
    browser: str        # "chrome" | "edge" | "firefox" | "safari"
    major_version: int
    platform: str       # value for sec-ch-ua-platform, unquoted
    mobile: bool = False

    @property
    def sends_client_hints(self) -> bool:
        return self.browser in ("chrome", "edge")


USER_AGENT_PROFILES: tuple[UserAgentProfile, ...] = (
    UserAgentProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
        "chrome", 124, "Windows",
    ),
    UserAgentProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
        "chrome", 123, "macOS",
    ),
    UserAgentProfile(
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
        "chrome", 122, "Linux",
    ),
    UserAgentProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36 Edg/124.0.0.0",
        "edge", 124, "Windows",
    ),
    UserAgentProfile(
        "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Mobile Safari/537.36",
        "chrome", 124, "Android", mobile=True,
    ),
    UserAgentProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
        "firefox", 125, "Windows",
    ),
    UserAgentProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
        "safari", 17, "macOS",
    ),
)

# Cookies a returning visitor already holds: consent given, store and
# delivery zone chosen.
SESSION_COOKIES: Mapping[str, str] = MappingProxyType({
    "cookieconsent_status": "allow",
    "OptanonAlertBoxClosed": "2024-01-15T09:30:00.000Z",
    "preferred_store": "1",
    "delivery_zone": "1",
})

REFERERS: tuple[str, ...] = (
    "https://www.google.com/",
    "https://www.google.gr/",
    "https://www.bing.com/",
)

CACHE_CONTROL_VALUES: tuple[str, ...] = ("max-age=0", "no-cache")

# Headers that would reveal the machine we run on rather than a browser.
HOSTING_HEADER_PREFIXES: tuple[str, ...] = (
    "x-vercel-",
    "x-amzn-",
    "x-amz-",
    "x-forwarded-",
    "x-real-ip",
    "x-cloud-trace",
    "cf-",
    "fly-",
    "via",
    "forwarded",
)


def _is_hosting_header(name: str) -> bool:
    lowered = name.lower()
    return any(lowered.startswith(prefix) for prefix in HOSTING_HEADER_PREFIXES)


@dataclass(frozen=True)
class Identity:
    """One coherent request identity. Read-only once created."""
    user_agent: str
    headers: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    profile: UserAgentProfile | None = None

    def as_headers(self) -> dict[str, str]:
        """Full header set including User-Agent, as a fresh mutable dict."""
        return {"User-Agent": self.user_agent, **self.headers}


class IdentityGenerator:
    """
    Produces randomized, internally-consistent browser identities.

    Usage:
        generator = IdentityGenerator(random.Random(42))
        identity = generator.generate("https://www.example.gr/product/1")
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        profiles: tuple[UserAgentProfile, ...] = USER_AGENT_PROFILES,
        accept_language: str | None = None,
        extra_headers: Mapping[str, str] | None = None,
    ) -> None:
        if not profiles:
            raise ValueError("At least one user-agent profile is required")
        self._rng = rng or random.Random()
        self._profiles = profiles
        self._accept_language = accept_language or settings.ACCEPT_LANGUAGE
        self._extra_headers = dict(extra_headers or {})

    def generate(self, url: str | None = None) -> Identity:
        profile = self._rng.choice(self._profiles)

        headers: dict[str, str] = {
            "Accept": _accept_for(profile),
            "Accept-Language": self._accept_language,
            "Accept-Encoding": "gzip, deflate, br",
            "Upgrade-Insecure-Requests": "1",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-User": "?1",
        }

        if profile.sends_client_hints:
            headers.update(_client_hints(profile))

        referer = self._pick_referer(url)
        if referer:
            headers["Referer"] = referer
            headers["Sec-Fetch-Site"] = _sec_fetch_site(url, referer)
        else:
            headers["Sec-Fetch-Site"] = "none"

        if self._rng.random() < 0.5:
            headers["Cache-Control"] = self._rng.choice(CACHE_CONTROL_VALUES)

        headers.update(self._extra_headers)
        headers = {k: v for k, v in headers.items() if not _is_hosting_header(k)}

        identity = Identity(
            user_agent=profile.user_agent,
            headers=MappingProxyType(headers),
            cookies=MappingProxyType(dict(SESSION_COOKIES)),
            profile=profile,
        )
        logger.debug(
            "identity_generated",
            browser=profile.browser,
            platform=profile.platform,
            mobile=profile.mobile,
            has_referer="Referer" in headers,
            source="identity",
        )
        return identity

    def _pick_referer(self, url: str | None) -> str | None:
        roll = self._rng.random()
        if roll < 0.2:
            return None
        origin = _origin(url)
        if origin and roll < 0.45:
            return origin
        return self._rng.choice(REFERERS)


def _accept_for(profile: UserAgentProfile) -> str:
    if profile.browser in ("firefox", "safari"):
        return "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
    return (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,image/apng,*/*;q=0.8"
    )


def _client_hints(profile: UserAgentProfile) -> dict[str, str]:
    version = profile.major_version
    brand = "Microsoft Edge" if profile.browser == "edge" else "Google Chrome"
    return {
        "sec-ch-ua": f'"Chromium";v="{version}", "{brand}";v="{version}", "Not-A.Brand";v="99"',
        "sec-ch-ua-mobile": "?1" if profile.mobile else "?0",
        "sec-ch-ua-platform": f'"{profile.platform}"',
    }


def _origin(url: str | None) -> str | None:
    """scheme://host/ of url, or None when it cannot be parsed (e.g. "http://[::1")."""
    if not url:
        return None
    try:
        parsed = urlparse(url)
        parsed.port  # raises ValueError on a non-numeric port
    except ValueError:
        return None
    if not (parsed.scheme and parsed.netloc):
        return None
    return f"{parsed.scheme}://{parsed.netloc}/"


def _sec_fetch_site(url: str | None, referer: str) -> str:
    target = _origin(url)
    return "same-origin" if target and target == _origin(referer) else "cross-site"
