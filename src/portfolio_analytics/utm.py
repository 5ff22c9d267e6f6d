"""
UTM parameter parsing for campaign attribution.

UTM (Urchin Tracking Module) parameters are the industry standard for
tracking marketing campaigns. Only the five standard keys are read:

- utm_source: Where the traffic came from (e.g., "linkedin", "newsletter")
- utm_medium: Marketing medium (e.g., "cpc", "email", "social")
- utm_campaign: Campaign name (e.g., "q4", "product_launch")
- utm_content: Differentiates similar content/links
- utm_term: Paid search keywords

A present ``utm_source`` is used verbatim as the visit's source, so values
keep their original case. They are only stripped and length-limited.
"""

from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import parse_qs

UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term")

# Maximum length for UTM parameter values (security/sanity limit)
MAX_UTM_LENGTH = 200


@dataclass(frozen=True)
class UTMParams:
    """
    Extracted UTM parameters from a URL.

    All fields are optional - a URL may have some, all, or none.
    """
    source: str | None = None
    medium: str | None = None
    campaign: str | None = None
    content: str | None = None
    term: str | None = None

    @property
    def has_utm(self) -> bool:
        """Check if any UTM parameters are present."""
        return any([self.source, self.medium, self.campaign, self.content, self.term])

    @property
    def has_campaign_signal(self) -> bool:
        """True when a source or campaign tag is present."""
        return bool(self.source or self.campaign)

    def to_dict(self) -> dict[str, str]:
        """Convert to the stored ``utm_*`` mapping, excluding missing values."""
        values = (self.source, self.medium, self.campaign, self.content, self.term)
        return {key: value for key, value in zip(UTM_KEYS, values) if value}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "UTMParams":
        """Build from a stored ``utm_*`` mapping, ignoring anything malformed."""
        if not isinstance(data, Mapping):
            return cls()
        cleaned = [_clean_param(data.get(key)) for key in UTM_KEYS]
        return cls(*cleaned)


def _clean_param(value: Any) -> str | None:
    """
    Clean and validate a UTM parameter value.

    - Strip whitespace
    - Truncate to max length
    - Return None for empty or non-string values
    """
    if not value or not isinstance(value, str):
        return None

    cleaned = value.strip()

    if len(cleaned) > MAX_UTM_LENGTH:
        cleaned = cleaned[:MAX_UTM_LENGTH]

    return cleaned if cleaned else None


def parse_utm(url: str | None) -> UTMParams:
    """
    Extract UTM parameters from a URL or bare query string.

    Examples:
        >>> parse_utm("https://example.com/?utm_source=LinkedIn&utm_campaign=q4")
        UTMParams(source='LinkedIn', medium=None, campaign='q4', ...)

        >>> parse_utm("?utm_medium=email")
        UTMParams(source=None, medium='email', ...)

        >>> parse_utm("https://example.com/page").has_utm
        False
    """
    if not url:
        return UTMParams()

    if "?" in url:
        query = url.split("?", 1)[1].split("#", 1)[0]
    elif "=" in url and "://" not in url:
        query = url
    else:
        query = ""

    params = parse_qs(query, keep_blank_values=False)
    cleaned = [_clean_param((params.get(key) or [None])[0]) for key in UTM_KEYS]
    return UTMParams(*cleaned)
