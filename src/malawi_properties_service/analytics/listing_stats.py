from typing import Iterable, List

from malawi_properties_service.analytics.metrics import (
    average_time_to_sale,
    js_round,
    safe_percentage,
)
from malawi_properties_service.schemas.analytics_schemas import ListingStats
from malawi_properties_service.schemas.records import Property, PropertySummary, PropertyView


def build_listing_stats(properties: List[Property]) -> ListingStats:
    """Headline figures for an agent's or owner's own listings."""
    total_sales = sum(1 for p in properties if p.is_sold)
    return ListingStats(
        total_views=sum(p.views_count for p in properties),
        total_inquiries=sum(p.inquiries_count for p in properties),
        total_value=sum(p.price for p in properties),
        total_sales=total_sales,
        conversion_rate=safe_percentage(total_sales, len(properties)),
        average_time_to_sale=int(js_round(average_time_to_sale(properties))),
    )


def unique_viewed_listings(views: Iterable[PropertyView]) -> List[PropertySummary]:
    """Listings behind a buyer's views, first occurrence kept, deleted listings skipped."""
    seen = set()
    listings = []
    for view in views:
        listing = view.listing
        if listing is None or listing.id in seen:
            continue
        seen.add(listing.id)
        listings.append(listing)
    return listings
