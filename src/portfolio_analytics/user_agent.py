"""
In-app browser detection.

Social apps open links in an embedded WebView whose User-Agent carries an
app-specific token. Those visits frequently arrive with no referrer at all,
so the UA signature is the only evidence of where they came from.

Signatures are matched case-insensitively with ``re.search``. Matching is
independent of UTM and referrer data.
"""

import re
from functools import lru_cache

from .referrer import LINKEDIN, SocialNetwork


@lru_cache(maxsize=16)
def _compile(signatures: tuple[str, ...]) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(pattern, re.IGNORECASE) for pattern in signatures)


def detect_in_app_browser(user_agent: str | None, network: SocialNetwork = LINKEDIN) -> bool:
    """
    Check whether a user agent is the network's embedded browser.

    Examples:
        >>> detect_in_app_browser("Mozilla/5.0 (iPhone; ...) Mobile/15E148 [LinkedInApp]")
        True

        >>> detect_in_app_browser("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) Chrome/120.0")
        False
    """
    if not user_agent or not user_agent.strip():
        return False

    return any(pattern.search(user_agent) for pattern in _compile(network.ua_signatures))
