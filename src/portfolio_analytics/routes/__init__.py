"""
Analytics HTTP routes.

The collect router receives tracking beacons; the dashboard router serves
summaries, the administrative reset and a health check.
"""

from .collect import create_collect_router
from .dashboard import SummaryCache, create_dashboard_router

__all__ = ["create_collect_router", "create_dashboard_router", "SummaryCache"]
