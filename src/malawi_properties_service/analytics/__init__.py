from .admin_dashboard import build_admin_dashboard
from .listing_stats import build_listing_stats, unique_viewed_listings
from .market_intelligence import build_market_intelligence
from .search_intelligence import build_analytics_report
from .snapshot import MarketplaceSnapshot

__all__ = [
    "MarketplaceSnapshot",
    "build_admin_dashboard",
    "build_analytics_report",
    "build_listing_stats",
    "build_market_intelligence",
    "unique_viewed_listings",
]
