"""
Tests for referrer parsing and source classification.
"""

from __future__ import annotations

import pytest

from viewcounter.core.entities import SourceType
from viewcounter.core.services.referrer_classifier import (
    ReferrerConfig,
    ReferrerResult,
    ReferrerRules,
    extract_domain,
    parse_referrer,
)


class TestParseReferrer:
    """Referrer parsing."""

    @pytest.mark.parametrize("header", [None, "", "   "])
    def test_missing_is_direct(self, header: str | None) -> None:
        assert parse_referrer(header) == ReferrerResult(None, None, SourceType.DIRECT)

    def test_search_engine(self) -> None:
        result = parse_referrer("https://www.google.com/search?q=viewcounter")
        assert result.source_type == SourceType.SEARCH
        assert result.referrer_domain == "www.google.com"
        assert result.referrer == "https://www.google.com/search?q=viewcounter"

    def test_social_network(self) -> None:
        assert parse_referrer("https://m.facebook.com/story").source_type == SourceType.SOCIAL

    def test_email_client(self) -> None:
        assert parse_referrer("https://outlook.live.com/mail/0/").source_type == SourceType.EMAIL

    def test_search_precedes_email(self) -> None:
        # mail.google.com contains a search-engine fragment
        assert parse_referrer("https://mail.google.com/mail/u/0").source_type == SourceType.SEARCH

    def test_campaign_from_utm(self) -> None:
        result = parse_referrer("https://blog.example.com/post?utm_source=newsletter")
        assert result.source_type == SourceType.CAMPAIGN

    def test_campaign_marker_case_insensitive(self) -> None:
        result = parse_referrer("https://blog.example.com/post?UTM_MEDIUM=email")
        assert result.source_type == SourceType.CAMPAIGN

    def test_plain_referral(self) -> None:
        result = parse_referrer("https://news.ycombinator.com/item?id=1")
        assert result.source_type == SourceType.REFERRAL
        assert result.referrer_domain == "news.ycombinator.com"

    def test_domain_lower_cased(self) -> None:
        result = parse_referrer("HTTPS://WWW.BING.COM/search?q=x")
        assert result.referrer_domain == "www.bing.com"
        assert result.source_type == SourceType.SEARCH

    @pytest.mark.parametrize(
        "header",
        ["not a url", "example.com/page", "http://[invalid", "http://example.com:99999/"],
    )
    def test_malformed_is_unknown(self, header: str) -> None:
        result = parse_referrer(header)
        assert result.source_type == SourceType.UNKNOWN
        assert result.referrer_domain is None
        assert result.referrer == header

    def test_long_values_truncated(self) -> None:
        host = "a" * 250 + ".example.com"
        result = parse_referrer(f"https://{host}/" + "p" * 600)
        assert len(result.referrer) == 500
        assert len(result.referrer_domain) == 200


class TestRules:
    """Ordered rule evaluation."""

    def test_first_match_wins(self) -> None:
        # Matches both the search and social lists
        assert parse_referrer("https://google.facebook.com/").source_type == SourceType.SEARCH

    def test_custom_config(self) -> None:
        rules = ReferrerRules.from_config(
            ReferrerConfig(search_engines=("kagi",), social_networks=(), email_clients=())
        )
        assert rules.classify("kagi.com", "https://kagi.com/") == SourceType.SEARCH
        assert rules.classify("google.com", "https://google.com/") == SourceType.REFERRAL

    def test_explicit_rule_tuple(self) -> None:
        rules = ReferrerRules(rules=((SourceType.EMAIL, lambda domain, url: "mail" in domain),))
        result = parse_referrer("https://webmail.example.org/", rules=rules)
        assert result.source_type == SourceType.EMAIL


class TestExtractDomain:
    def test_host_only(self) -> None:
        assert extract_domain("https://sub.example.com:8443/path") == "sub.example.com"

    def test_no_host(self) -> None:
        assert extract_domain("/relative/path") is None
