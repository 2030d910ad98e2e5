"""
Referrer classification.

Parses a Referer header into its URL, host and coarse source type.

Key behaviors:
- Missing or empty header -> direct
- Malformed URL (unparsable or no host) -> unknown, URL kept, no domain
- Rules evaluated in order, first match wins:
  search engine -> social network -> email client -> utm params -> referral
- referrer truncated to 500 chars, referrer_domain to 200
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from viewcounter.core.entities import (
    MAX_REFERRER,
    MAX_REFERRER_DOMAIN,
    SourceType,
    truncate,
)

# --- Configuration ---


@dataclass(frozen=True)
class ReferrerConfig:
    """Curated domain fragments, matched case-insensitively as substrings."""

    search_engines: tuple[str, ...] = (
        "google",
        "bing",
        "yahoo",
        "duckduckgo",
        "baidu",
        "yandex",
        "ask",
        "aol",
        "ecosia",
        "qwant",
    )
    social_networks: tuple[str, ...] = (
        "facebook",
        "twitter",
        "x.com",
        "instagram",
        "linkedin",
        "reddit",
        "pinterest",
        "tiktok",
        "youtube",
        "snapchat",
        "whatsapp",
        "telegram",
        "discord",
        "tumblr",
        "vk.com",
        "weibo",
        "line.me",
        "mastodon",
    )
    email_clients: tuple[str, ...] = (
        "mail.google",
        "outlook",
        "mail.yahoo",
        "protonmail",
        "mail.aol",
    )
    campaign_markers: tuple[str, ...] = ("utm_source", "utm_medium")


DEFAULT_CONFIG = ReferrerConfig()


# --- Result ---


@dataclass(frozen=True)
class ReferrerResult:
    """Parsed referrer."""

    referrer: str | None = None
    referrer_domain: str | None = None
    source_type: SourceType = SourceType.DIRECT


# --- Rules ---

# predicate(domain, full_url) -> bool; both arguments are lower-cased
RulePredicate = Callable[[str, str], bool]


def _contains_any(fragments: tuple[str, ...]) -> RulePredicate:
    return lambda domain, _url: any(f in domain for f in fragments)


def _url_contains_any(fragments: tuple[str, ...]) -> RulePredicate:
    return lambda _domain, url: any(f in url for f in fragments)


@dataclass(frozen=True)
class ReferrerRules:
    """Ordered (source type, predicate) pairs."""

    rules: tuple[tuple[SourceType, RulePredicate], ...] = field(default_factory=tuple)

    @classmethod
    def from_config(cls, config: ReferrerConfig) -> ReferrerRules:
        return cls(
            rules=(
                (SourceType.SEARCH, _contains_any(config.search_engines)),
                (SourceType.SOCIAL, _contains_any(config.social_networks)),
                (SourceType.EMAIL, _contains_any(config.email_clients)),
                (SourceType.CAMPAIGN, _url_contains_any(config.campaign_markers)),
            )
        )

    def classify(self, domain: str, url: str) -> SourceType:
        domain_lower = domain.lower()
        url_lower = url.lower()
        for source_type, predicate in self.rules:
            if predicate(domain_lower, url_lower):
                return source_type
        return SourceType.REFERRAL


DEFAULT_RULES = ReferrerRules.from_config(DEFAULT_CONFIG)


# --- Parsing ---


def extract_domain(url: str) -> str | None:
    """Return the lower-cased host of a URL, or None if it has none."""
    try:
        parts = urlsplit(url)
        host = parts.hostname
        parts.port  # raises ValueError for a non-numeric or out-of-range port
    except ValueError:
        return None
    return host or None


def parse_referrer(
    referrer: str | None,
    rules: ReferrerRules = DEFAULT_RULES,
) -> ReferrerResult:
    """Parse and classify a referrer header."""
    if not referrer or not referrer.strip():
        return ReferrerResult()

    stored = truncate(referrer, MAX_REFERRER)
    domain = extract_domain(referrer.strip())

    if domain is None:
        return ReferrerResult(
            referrer=stored,
            referrer_domain=None,
            source_type=SourceType.UNKNOWN,
        )

    return ReferrerResult(
        referrer=stored,
        referrer_domain=truncate(domain, MAX_REFERRER_DOMAIN),
        source_type=rules.classify(domain, referrer),
    )
