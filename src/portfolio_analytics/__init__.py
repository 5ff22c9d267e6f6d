"""
Visitor attribution analytics for a personal portfolio site.

Usage:
    from portfolio_analytics import AnalyticsConfig, setup_analytics

    analytics = setup_analytics(AnalyticsConfig.from_env(site_name="janedoe.dev"))

    # Ingestion and dashboard routes
    app.include_router(analytics.collect_router)
    app.include_router(analytics.dashboard_router)

Or build a complete app:

    from portfolio_analytics import create_app
    app = create_app()
"""

import httpx
from fastapi import FastAPI

from .config import AnalyticsConfig, hash_api_key
from .core import AnalyticsClient, EventStore, FirestoreEventStore, InMemoryEventStore
from .models import AnalyticsSummary, EventRecord, FirstTouch
from .recorder import AttributionRecorder, BeaconTransport, KeyValueStorage, PageContext
from .referrer import LINKEDIN, SocialNetwork
from .routes import create_collect_router, create_dashboard_router

__version__ = "0.1.0"
__all__ = [
    "setup_analytics", "create_app", "Analytics",
    "AnalyticsConfig", "hash_api_key",
    "AnalyticsClient", "EventStore", "FirestoreEventStore", "InMemoryEventStore",
    "AnalyticsSummary", "EventRecord", "FirstTouch",
    "AttributionRecorder", "BeaconTransport", "PageContext",
]


class Analytics:
    """Main analytics interface for a site."""

    def __init__(
        self,
        config: AnalyticsConfig,
        store: EventStore | None = None,
        network: SocialNetwork = LINKEDIN,
    ):
        self.config = config
        self.network = network
        self.store = store or FirestoreEventStore(
            project_id=config.firestore_project_id,
            api_token=config.firestore_api_token,
            collection=config.collection,
            timeout=config.query_timeout_seconds,
        )
        self.client = AnalyticsClient(self.store, config, network=network)
        self.collect_router = create_collect_router(self.client, config)
        self.dashboard_router = create_dashboard_router(self.client, config)

    def recorder(
        self,
        durable_storage: KeyValueStorage,
        session_storage: KeyValueStorage,
        site_url: str,
        endpoint: str = "/api/track",
        beacon=None,
        http_transport: httpx.BaseTransport | None = None,
    ) -> AttributionRecorder:
        """
        Build a recorder that reports to this site's collect endpoint.

        Args:
            durable_storage: Storage kept across sessions (localStorage)
            session_storage: Storage cleared per session (sessionStorage)
            site_url: Origin serving the collect route (e.g., "https://janedoe.dev")
            endpoint: Collect route, resolved against ``site_url``
            beacon: Optional beacon sender tried before the POST fallback
            http_transport: httpx transport for the POST fallback
        """
        return AttributionRecorder(
            transport=BeaconTransport(
                endpoint,
                beacon=beacon,
                base_url=site_url,
                http_transport=http_transport,
            ),
            durable_storage=durable_storage,
            session_storage=session_storage,
            network=self.network,
            excluded_paths=self.config.excluded_paths,
        )


def setup_analytics(
    config: AnalyticsConfig,
    store: EventStore | None = None,
    network: SocialNetwork = LINKEDIN,
) -> Analytics:
    """
    Set up analytics for a site.

    Args:
        config: Analytics configuration (see ``AnalyticsConfig.from_env``)
        store: Event store to use. Defaults to the Firestore collection
               named in the config.
        network: Social network given dedicated attribution

    Returns:
        Analytics instance with collect_router and dashboard_router
    """
    return Analytics(config, store=store, network=network)


def create_app(config: AnalyticsConfig | None = None, store: EventStore | None = None) -> FastAPI:
    """Create a FastAPI app serving ingestion and dashboard routes."""
    analytics = setup_analytics(config or AnalyticsConfig.from_env(), store=store)
    app = FastAPI(title=f"{analytics.config.site_name} analytics", version=__version__)
    app.include_router(analytics.collect_router)
    app.include_router(analytics.dashboard_router)
    app.state.analytics = analytics
    return app
