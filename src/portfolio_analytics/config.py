"""
Configuration for portfolio analytics.
"""
import hashlib
import logging
import os
import secrets
import warnings
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# API key security constants
MIN_API_KEY_LENGTH = 16

# Upper bound on raw events returned in a summary
MAX_RECENT_EVENTS = 100

DEFAULT_IP_HASH_SALT = "default-salt-change-me"

# Environment variables read by AnalyticsConfig.from_env()
ENV_VARS = (
    "FIREBASE_PROJECT_ID",
    "FIRESTORE_API_TOKEN",
    "ANALYTICS_API_KEY",
    "IP_HASH_SALT",
)


class ApiKeyTooShortError(ValueError):
    """Raised when an API key doesn't meet minimum length requirements."""
    pass


def validate_api_key_strength(api_key: str) -> None:
    """Validate API key meets security requirements.

    Raises:
        ApiKeyTooShortError: If api_key is shorter than MIN_API_KEY_LENGTH
    """
    if len(api_key) < MIN_API_KEY_LENGTH:
        raise ApiKeyTooShortError(
            f"API key must be at least {MIN_API_KEY_LENGTH} characters. "
            f"Got {len(api_key)} characters."
        )


def hash_api_key(api_key: str, validate: bool = True) -> str:
    """Hash the dashboard API key for storage in ANALYTICS_API_KEY.

    The summary and reset routes compare the caller's bearer token (or
    ``?key=``) against this value, so the deployment only ever holds the
    hash. Format: pbkdf2:iterations:salt_hex:hash_hex (PBKDF2-SHA256).

        from portfolio_analytics.config import hash_api_key
        print(hash_api_key("your-dashboard-key"))

    Raises:
        ApiKeyTooShortError: If validate=True and api_key is too short
    """
    if validate:
        validate_api_key_strength(api_key)

    salt = os.urandom(16)
    iterations = 100_000
    dk = hashlib.pbkdf2_hmac("sha256", api_key.encode(), salt, iterations)
    return f"pbkdf2:{iterations}:{salt.hex()}:{dk.hex()}"


def verify_api_key(stored: str, provided: str) -> bool:
    """Check a dashboard request's key against the configured ANALYTICS_API_KEY.

    ``stored`` is either a ``pbkdf2:`` hash from hash_api_key() or a
    plaintext key (deprecated). Comparison is timing-safe; a malformed
    hash never matches.
    """
    if stored.startswith("pbkdf2:"):
        try:
            _, iterations_str, salt_hex, hash_hex = stored.split(":")
            iterations = int(iterations_str)
            salt = bytes.fromhex(salt_hex)
            expected_hash = bytes.fromhex(hash_hex)

            dk = hashlib.pbkdf2_hmac("sha256", provided.encode(), salt, iterations)
            return secrets.compare_digest(dk, expected_hash)
        except (ValueError, TypeError):
            return False
    else:
        return secrets.compare_digest(stored.encode(), provided.encode())


def env_status(environ: dict[str, str] | None = None) -> dict[str, bool]:
    """Report which configuration environment variables are set."""
    environ = os.environ if environ is None else environ
    return {name: bool(environ.get(name)) for name in ENV_VARS}


@dataclass
class AnalyticsConfig:
    """Configuration for a single analytics instance."""

    # Required
    site_name: str  # Domain identifier (e.g., "janedoe.dev")
    firestore_project_id: str = ""
    firestore_api_token: str = ""
    collection: str = "analytics_events"

    # Dashboard authentication (plaintext or pbkdf2 hash). None disables auth.
    api_key: str | None = None

    # Ingestion
    ip_hash_salt: str = ""
    excluded_paths: tuple[str, ...] = ("/admin", "/analytics")

    # Aggregation
    default_window_days: int = 30
    recent_events_limit: int = 100
    window_field: str = "serverReceivedAt"  # "dateBucket" for stores that predate it
    query_timeout_seconds: float = 30.0

    # Performance
    cache_ttl_seconds: int = 300  # Summary response cache

    @property
    def has_auth(self) -> bool:
        """Check if dashboard authentication is configured."""
        return bool(self.api_key)

    @property
    def is_api_key_hashed(self) -> bool:
        """Check if the API key is properly hashed."""
        return bool(self.api_key and self.api_key.startswith("pbkdf2:"))

    @property
    def effective_ip_hash_salt(self) -> str:
        return self.ip_hash_salt or DEFAULT_IP_HASH_SALT

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.default_window_days <= 0:
            raise ValueError("default_window_days must be positive")
        if not 0 < self.recent_events_limit <= MAX_RECENT_EVENTS:
            raise ValueError(
                f"recent_events_limit must be between 1 and {MAX_RECENT_EVENTS}"
            )
        if self.window_field not in ("serverReceivedAt", "dateBucket"):
            raise ValueError(f"Unsupported window_field: {self.window_field}")
        if not self.ip_hash_salt:
            logger.warning(
                f"Site {self.site_name}: IP_HASH_SALT is not set, "
                f"using the built-in default salt"
            )
        self._validate_api_key()

    def _validate_api_key(self) -> None:
        """Validate and warn about API key configuration.

        - Warns if plaintext key is used (should be hashed)
        - Logs info about key status for debugging
        """
        if not self.api_key:
            return

        if self.api_key.startswith("pbkdf2:"):
            logger.debug(f"Site {self.site_name}: Using hashed API key")
        else:
            warnings.warn(
                f"Site {self.site_name}: Using a plaintext API key is deprecated. "
                f"Use hash_api_key() to generate a hashed key:\n"
                f"  from portfolio_analytics.config import hash_api_key\n"
                f"  print(hash_api_key('your-api-key'))",
                DeprecationWarning,
                stacklevel=3
            )
            if len(self.api_key) < MIN_API_KEY_LENGTH:
                logger.warning(
                    f"Site {self.site_name}: API key is shorter than "
                    f"recommended {MIN_API_KEY_LENGTH} characters"
                )

    @classmethod
    def from_env(cls, site_name: str = "", environ: dict[str, str] | None = None) -> "AnalyticsConfig":
        """Build a config from the deployment's environment variables."""
        environ = os.environ if environ is None else environ
        return cls(
            site_name=site_name or environ.get("ANALYTICS_SITE_NAME", "portfolio"),
            firestore_project_id=environ.get("FIREBASE_PROJECT_ID", ""),
            firestore_api_token=environ.get("FIRESTORE_API_TOKEN", ""),
            collection=environ.get("ANALYTICS_COLLECTION") or "analytics_events",
            api_key=environ.get("ANALYTICS_API_KEY") or None,
            ip_hash_salt=environ.get("IP_HASH_SALT", ""),
            cache_ttl_seconds=int(environ.get("ANALYTICS_CACHE_TTL") or 300),
        )
