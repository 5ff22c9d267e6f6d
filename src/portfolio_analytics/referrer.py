"""
Traffic source resolution.

Every event carries exactly one ``source`` label, chosen by a fixed
precedence (first match wins):

1. ``utm_source`` from the landing URL, verbatim
2. The tracked social network's label, when the referrer hostname contains
   one of its domains or the user agent is its in-app browser
3. ``"direct"`` when there is no referrer at all
4. The referrer's bare hostname otherwise

The in-app browser flag is reported independently of which branch wins.
"""

from dataclasses import dataclass
from urllib.parse import urlparse

from .utm import UTMParams

SOURCE_DIRECT = "direct"
SOURCE_UNKNOWN = "unknown"


@dataclass(frozen=True)
class SocialNetwork:
    """
    A social network whose traffic gets dedicated attribution.

    Attributes:
        label: Canonical source label written to records (e.g., "linkedin")
        domains: Hostname fragments identifying the network as a referrer
        ua_signatures: Regexes identifying its embedded in-app browser
    """
    label: str
    domains: tuple[str, ...]
    ua_signatures: tuple[str, ...]


LINKEDIN = SocialNetwork(
    label="linkedin",
    domains=("linkedin.com", "lnkd.in"),
    ua_signatures=(r"LinkedInApp", r"LinkedIn", r"LNKD"),
)


@dataclass(frozen=True)
class SourceResolution:
    """Outcome of source classification for a single visit."""
    source: str
    referrer_domain: str
    in_app_browser: bool = False


def extract_domain(referrer: str | None) -> str:
    """
    Extract the bare hostname from a referrer URL.

    Returns "" if referrer is empty or unparseable.
    """
    if not referrer or not referrer.strip():
        return ""

    referrer = referrer.strip()
    if "://" not in referrer:
        referrer = "https://" + referrer

    try:
        return urlparse(referrer).hostname or ""
    except ValueError:
        return ""


def is_network_domain(domain: str, network: SocialNetwork = LINKEDIN) -> bool:
    """Hostname containment check against the network's domains."""
    domain = domain.lower()
    return any(pattern in domain for pattern in network.domains)


def resolve_source(
    utm: UTMParams,
    referrer: str | None,
    in_app_browser: bool = False,
    network: SocialNetwork = LINKEDIN,
) -> SourceResolution:
    """
    Resolve a visit's traffic source.

    Args:
        utm: UTM parameters parsed from the landing URL
        referrer: The document referrer (full URL or empty)
        in_app_browser: Whether the user agent matched the network's WebView
        network: The social network given dedicated attribution

    Examples:
        >>> resolve_source(UTMParams(source="newsletter"), "https://www.linkedin.com/feed/").source
        'newsletter'

        >>> resolve_source(UTMParams(), "", in_app_browser=True).source
        'linkedin'

        >>> resolve_source(UTMParams(), "https://news.example.com/a").source
        'news.example.com'
    """
    referrer_domain = extract_domain(referrer)

    if utm.source:
        source = utm.source
    elif is_network_domain(referrer_domain, network) or in_app_browser:
        source = network.label
    elif not referrer or not referrer.strip():
        source = SOURCE_DIRECT
    else:
        # An unparseable referrer still counts as present
        source = referrer_domain or SOURCE_UNKNOWN

    return SourceResolution(
        source=source,
        referrer_domain=referrer_domain,
        in_app_browser=in_app_browser,
    )
