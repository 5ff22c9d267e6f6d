"""Tests for source resolution, in-app browser detection and UTM parsing."""

from portfolio_analytics.referrer import (
    LINKEDIN,
    SocialNetwork,
    extract_domain,
    is_network_domain,
    resolve_source,
)
from portfolio_analytics.user_agent import detect_in_app_browser
from portfolio_analytics.utm import MAX_UTM_LENGTH, UTMParams, parse_utm

LINKEDIN_IOS_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Mobile/15E148 [LinkedInApp]/9.29.1"
)
CHROME_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class TestUTMParsing:
    """Test UTM parameter extraction."""

    def test_basic_utm_params(self):
        utm = parse_utm("https://example.com/?utm_source=LinkedIn&utm_campaign=q4")
        assert utm.source == "LinkedIn"
        assert utm.campaign == "q4"
        assert utm.medium is None
        assert utm.has_utm is True

    def test_all_utm_params(self):
        url = (
            "https://example.com/?utm_source=newsletter&utm_medium=email"
            "&utm_campaign=launch&utm_content=header&utm_term=portfolio"
        )
        utm = parse_utm(url)
        assert utm.to_dict() == {
            "utm_source": "newsletter",
            "utm_medium": "email",
            "utm_campaign": "launch",
            "utm_content": "header",
            "utm_term": "portfolio",
        }

    def test_non_utm_params_ignored(self):
        utm = parse_utm("https://example.com/?ref=producthunt&source=x")
        assert utm.has_utm is False
        assert utm.to_dict() == {}

    def test_bare_query_string(self):
        assert parse_utm("?utm_medium=email").medium == "email"
        assert parse_utm("utm_source=twitter").source == "twitter"

    def test_empty_url(self):
        assert parse_utm("") == UTMParams()
        assert parse_utm(None) == UTMParams()

    def test_url_without_query(self):
        assert parse_utm("https://example.com/projects").has_utm is False

    def test_utm_with_fragment(self):
        utm = parse_utm("https://example.com/?utm_source=google#section")
        assert utm.source == "google"

    def test_blank_values_dropped(self):
        utm = parse_utm("https://example.com/?utm_source=&utm_campaign=%20%20")
        assert utm.source is None
        assert utm.campaign is None

    def test_long_values_truncated(self):
        utm = parse_utm("https://example.com/?utm_source=" + "a" * 500)
        assert len(utm.source) == MAX_UTM_LENGTH

    def test_campaign_signal(self):
        assert UTMParams(campaign="q4").has_campaign_signal is True
        assert UTMParams(source="x").has_campaign_signal is True
        assert UTMParams(medium="email").has_campaign_signal is False

    def test_from_mapping_ignores_malformed(self):
        utm = UTMParams.from_mapping({"utm_source": 5, "utm_medium": " cpc ", "other": "x"})
        assert utm.source is None
        assert utm.medium == "cpc"
        assert UTMParams.from_mapping("not a mapping") == UTMParams()


class TestInAppBrowserDetection:
    """Test LinkedIn WebView detection."""

    def test_linkedin_app_detected(self):
        assert detect_in_app_browser(LINKEDIN_IOS_UA) is True

    def test_case_insensitive(self):
        assert detect_in_app_browser("Mozilla/5.0 linkedinapp") is True
        assert detect_in_app_browser("Mozilla/5.0 (Android) lnkd/1.0") is True

    def test_regular_browser_not_detected(self):
        assert detect_in_app_browser(CHROME_UA) is False

    def test_empty_ua(self):
        assert detect_in_app_browser("") is False
        assert detect_in_app_browser(None) is False

    def test_other_network(self):
        network = SocialNetwork(label="twitter", domains=("t.co",), ua_signatures=(r"Twitter",))
        assert detect_in_app_browser("Mozilla/5.0 Twitter for iPhone", network) is True
        assert detect_in_app_browser(LINKEDIN_IOS_UA, network) is False


class TestReferrerDomain:
    """Test referrer hostname extraction."""

    def test_full_url(self):
        assert extract_domain("https://www.linkedin.com/feed/") == "www.linkedin.com"

    def test_url_without_scheme(self):
        assert extract_domain("news.example.com/article") == "news.example.com"

    def test_empty(self):
        assert extract_domain("") == ""
        assert extract_domain(None) == ""
        assert extract_domain("   ") == ""

    def test_network_domain_containment(self):
        assert is_network_domain("www.linkedin.com") is True
        assert is_network_domain("lnkd.in") is True
        assert is_network_domain("github.com") is False


class TestSourceResolution:
    """Test source precedence: utm_source, network, direct, referrer host."""

    def test_utm_source_wins_over_network_referrer(self):
        result = resolve_source(UTMParams(source="newsletter"), "https://www.linkedin.com/feed/")
        assert result.source == "newsletter"
        assert result.referrer_domain == "www.linkedin.com"

    def test_utm_source_kept_verbatim(self):
        result = resolve_source(UTMParams(source="LinkedIn_Post"), "")
        assert result.source == "LinkedIn_Post"

    def test_utm_source_wins_over_in_app_browser(self):
        result = resolve_source(UTMParams(source="resume"), "", in_app_browser=True)
        assert result.source == "resume"
        assert result.in_app_browser is True

    def test_network_referrer(self):
        result = resolve_source(UTMParams(), "https://www.linkedin.com/in/someone")
        assert result.source == "linkedin"

    def test_short_link_referrer(self):
        assert resolve_source(UTMParams(), "https://lnkd.in/abc123").source == "linkedin"

    def test_in_app_browser_without_referrer(self):
        result = resolve_source(UTMParams(), "", in_app_browser=True)
        assert result.source == "linkedin"
        assert result.referrer_domain == ""

    def test_no_referrer_is_direct(self):
        result = resolve_source(UTMParams(), "")
        assert result.source == "direct"
        assert result.in_app_browser is False

    def test_utm_without_source_falls_through(self):
        result = resolve_source(UTMParams(campaign="q4"), "")
        assert result.source == "direct"

    def test_other_referrer_uses_hostname(self):
        result = resolve_source(UTMParams(), "https://news.example.com/a?b=c")
        assert result.source == "news.example.com"

    def test_custom_network_label(self):
        network = SocialNetwork(label="mastodon", domains=("mastodon.social",), ua_signatures=())
        result = resolve_source(UTMParams(), "https://mastodon.social/@me", network=network)
        assert result.source == "mastodon"
        assert LINKEDIN.label == "linkedin"
