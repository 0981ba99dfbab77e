"""
Admin console report.

``build_admin_dashboard`` reduces a full ``MarketplaceSnapshot`` into the
figures shown on the admin console. It performs no I/O; the snapshot loader in
``crud.analytics_crud`` fetches every table first.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, tzinfo
from typing import Dict, List, Optional

from malawi_properties_service.analytics.metrics import (
    average_time_to_sale,
    count_by,
    inquiry_origin,
    js_round,
    newest_first,
    parse_budget,
    rank,
    safe_mean,
    safe_percentage,
    top_counts,
)
from malawi_properties_service.analytics.plot_intelligence import build_plot_intelligence
from malawi_properties_service.analytics.snapshot import MarketplaceSnapshot
from malawi_properties_service.schemas.analytics_schemas import (
    ActivityItem,
    AdminDashboardReport,
    AdminStats,
    BuyerJourney,
    DistrictPerformance,
    InquiryFunnel,
    LabelCount,
    LabelShare,
    PropertyPerformance,
    SegmentComparison,
    SegmentSummary,
    SystemHealth,
    WeeklyTrend,
)
from malawi_properties_service.schemas.records import (
    Inquiry,
    OriginType,
    Property,
    PropertyStatus,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

# Share of inquiries assumed to turn into phone calls and site visits
DIRECT_CALL_RATIO = 0.3
SITE_VISIT_RATIO = 0.2


def _label_counts(counts: Dict, limit: Optional[int] = None) -> List[LabelCount]:
    return [LabelCount(label=label, count=count) for label, count in top_counts(counts, limit)]


def _segment(inquiries: List[Inquiry], total: int) -> SegmentSummary:
    budgets = [b for b in (parse_budget(i.budget_range) for i in inquiries) if b is not None]
    districts = count_by(inquiries, lambda i: (i.listing.district if i.listing else None) or "Unknown")
    return SegmentSummary(
        count=len(inquiries),
        percentage=safe_percentage(len(inquiries), total),
        average_budget=int(js_round(safe_mean(budgets))),
        top_districts=_label_counts(districts, 5),
    )


def segment_comparison(inquiries: List[Inquiry]) -> SegmentComparison:
    diaspora = [i for i in inquiries if inquiry_origin(i) == OriginType.DIASPORA]
    local = [i for i in inquiries if inquiry_origin(i) == OriginType.LOCAL]
    cities = count_by(local, lambda i: i.local_origin_city or i.buyer_city or "Unknown")
    return SegmentComparison(
        diaspora=_segment(diaspora, len(inquiries)),
        local=_segment(local, len(inquiries)),
        top_local_cities=_label_counts(cities, 5),
    )


def admin_stats(snapshot: MarketplaceSnapshot, now: datetime) -> AdminStats:
    properties = snapshot.properties
    total_properties = len(properties)
    total_inquiries = len(snapshot.inquiries)
    total_views = len(snapshot.views)

    diaspora = sum(1 for i in snapshot.inquiries if inquiry_origin(i) == OriginType.DIASPORA)

    def active_since(cutoff: datetime) -> int:
        return sum(
            1
            for p in snapshot.profiles
            if (p.last_login or p.created_at) and (p.last_login or p.created_at) >= cutoff
        )

    type_counts = top_counts(count_by(properties, lambda p: p.property_type), 1)

    return AdminStats(
        total_users=len(snapshot.profiles),
        total_agents=len(snapshot.agents),
        total_properties=total_properties,
        total_inquiries=total_inquiries,
        total_views=total_views,
        total_sales=sum(1 for p in properties if p.is_sold),
        estimated_market_value=sum(
            p.price
            for p in properties
            if p.status in (PropertyStatus.AVAILABLE, PropertyStatus.PENDING)
        ),
        diaspora_percentage=safe_percentage(diaspora, total_inquiries),
        average_time_to_sale=int(js_round(average_time_to_sale(properties))),
        inquiry_rate=js_round(safe_percentage(total_inquiries, total_properties), 2),
        view_to_inquiry_rate=js_round(safe_percentage(total_inquiries, total_views), 2),
        active_users_7d=active_since(now - timedelta(days=7)),
        active_users_30d=active_since(now - timedelta(days=30)),
        most_active_property_type=type_counts[0][0] if type_counts else "N/A",
    )


def _performance(p: Property) -> PropertyPerformance:
    return PropertyPerformance(
        id=p.id,
        title=p.title,
        district=p.district,
        status=p.status.value,
        views_count=p.views_count,
        inquiries_count=p.inquiries_count,
        performance_score=p.views_count + p.inquiries_count * 2,
    )


def top_performing(snapshot: MarketplaceSnapshot, limit: int = 10) -> List[PropertyPerformance]:
    rows = [_performance(p) for p in snapshot.properties]
    return rank(rows, score=lambda r: r.performance_score, label=lambda r: r.title, limit=limit)


def needs_attention(snapshot: MarketplaceSnapshot, now: datetime, limit: int = 10) -> List[PropertyPerformance]:
    """Listings never viewed, or whose latest recorded view is over 30 days old."""
    cutoff = now - timedelta(days=30)
    last_viewed: Dict[str, datetime] = {}
    for view in snapshot.views:
        if view.property_id and view.viewed_at:
            current = last_viewed.get(view.property_id)
            if current is None or view.viewed_at > current:
                last_viewed[view.property_id] = view.viewed_at

    stale = []
    for p in snapshot.properties:
        last = last_viewed.get(p.id)
        if p.views_count == 0 or last is None or last < cutoff:
            stale.append(_performance(p))
    return stale[:limit]


def real_time_activity(snapshot: MarketplaceSnapshot, now: datetime, limit: int = 20) -> List[ActivityItem]:
    since = now - timedelta(hours=24)
    items: List[ActivityItem] = []

    for p in snapshot.properties:
        if p.created_at and p.created_at >= since:
            items.append(
                ActivityItem(
                    type="property_listed",
                    description=f"New property: {p.title}",
                    timestamp=p.created_at,
                    actor="Agent/Owner",
                )
            )
    for i in snapshot.inquiries:
        if i.created_at and i.created_at >= since:
            title = (i.listing.title if i.listing else None) or "property"
            items.append(
                ActivityItem(
                    type="inquiry",
                    description=f"New inquiry for {title}",
                    timestamp=i.created_at,
                    actor="Buyer",
                )
            )
    for u in snapshot.profiles:
        if u.created_at and u.created_at >= since:
            name = u.full_name or u.email or u.id
            items.append(
                ActivityItem(
                    type="user_signup",
                    description=f"New user: {name}",
                    timestamp=u.created_at,
                    actor=name,
                )
            )

    items.sort(key=lambda item: item.timestamp, reverse=True)
    return items[:limit]


def traffic_sources(snapshot: MarketplaceSnapshot, limit: int = 10) -> List[LabelShare]:
    """Source shares over the traffic rows in the snapshot (the latest 100)."""
    total = len(snapshot.traffic) or 1
    counts = count_by(snapshot.traffic, lambda t: t.source or "direct")
    return [
        LabelShare(label=source, count=count, percentage=js_round(count / total * 100, 1))
        for source, count in top_counts(counts, limit)
    ]


def weekly_trends(snapshot: MarketplaceSnapshot, now: datetime, tz: tzinfo, weeks: int = 12) -> List[WeeklyTrend]:
    since = now - timedelta(weeks=weeks)
    buckets: Dict = defaultdict(
        lambda: {"properties": 0, "inquiries": 0, "sales": 0, "views": 0, "value": 0.0}
    )

    for p in snapshot.properties:
        if not p.created_at or p.created_at < since:
            continue
        local_day = p.created_at.astimezone(tz).date()
        # Weeks start on Sunday
        week_start = local_day - timedelta(days=(local_day.weekday() + 1) % 7)
        bucket = buckets[week_start]
        bucket["properties"] += 1
        bucket["views"] += p.views_count
        bucket["inquiries"] += p.inquiries_count
        bucket["value"] += p.price
        if p.is_sold:
            bucket["sales"] += 1

    trends = [WeeklyTrend(week=week, **data) for week, data in sorted(buckets.items())]
    return trends[-weeks:]


def district_performance(snapshot: MarketplaceSnapshot, limit: int = 10) -> List[DistrictPerformance]:
    groups: Dict[str, Dict] = {}
    for p in snapshot.properties:
        data = groups.setdefault(
            p.district,
            {"listings": 0, "sold": 0, "total_sale_value": 0.0, "local": 0, "diaspora": 0},
        )
        data["listings"] += 1
        if p.is_sold:
            data["sold"] += 1
            if p.sale_price:
                data["total_sale_value"] += p.sale_price
            if p.buyer_type == OriginType.LOCAL:
                data["local"] += 1
            elif p.buyer_type == OriginType.DIASPORA:
                data["diaspora"] += 1

    views = count_by(snapshot.views, lambda v: v.listing.district if v.listing else None)
    inquiries = count_by(snapshot.inquiries, lambda i: i.listing.district if i.listing else None)

    rows = []
    for district, data in groups.items():
        sold = data["sold"]
        total_value = data["total_sale_value"]
        rows.append(
            DistrictPerformance(
                district=district,
                listings=data["listings"],
                sold=sold,
                total_sale_value=total_value,
                average_sale_price=int(js_round(total_value / sold)) if sold and total_value else 0,
                local_buyers=data["local"],
                diaspora_buyers=data["diaspora"],
                sales_rate=int(js_round(safe_percentage(sold, data["listings"]))),
                views=views.get(district, 0),
                inquiries=inquiries.get(district, 0),
            )
        )
    return rank(rows, score=lambda r: r.listings, label=lambda r: r.district, limit=limit)


def diaspora_locations(inquiries: List[Inquiry], limit: int = 10) -> List[LabelCount]:
    counts = count_by(
        inquiries,
        lambda i: i.profile.current_location
        if i.profile and i.profile.is_diaspora and i.profile.current_location
        else None,
    )
    return _label_counts(counts, limit)


def build_admin_dashboard(
    snapshot: MarketplaceSnapshot,
    now: datetime,
    tz: tzinfo,
    system_health: Optional[SystemHealth] = None,
) -> AdminDashboardReport:
    stats = admin_stats(snapshot, now)
    logger.debug(
        f"Admin dashboard over {stats.total_properties} properties, "
        f"{stats.total_inquiries} inquiries and {stats.total_views} views"
    )

    return AdminDashboardReport(
        generated_at=now,
        stats=stats,
        segments=segment_comparison(snapshot.inquiries),
        buyer_journey=BuyerJourney(
            views=stats.total_views,
            inquiries=stats.total_inquiries,
            estimated_direct_calls=int(js_round(stats.total_inquiries * DIRECT_CALL_RATIO)),
        ),
        top_performing=top_performing(snapshot),
        needs_attention=needs_attention(snapshot, now),
        real_time_activity=real_time_activity(snapshot, now),
        traffic_sources=traffic_sources(snapshot),
        inquiry_funnel=InquiryFunnel(
            views=stats.total_views,
            inquiries=stats.total_inquiries,
            visits=int(js_round(stats.total_inquiries * SITE_VISIT_RATIO)),
            sales=stats.total_sales,
        ),
        weekly_trends=weekly_trends(snapshot, now, tz),
        recent_properties=newest_first(snapshot.properties, 10),
        recent_inquiries=newest_first(snapshot.inquiries, 10),
        recent_users=newest_first(snapshot.profiles, 10),
        pending_verifications=[
            a for a in snapshot.agents if a.verification_status == VerificationStatus.PENDING
        ],
        districts=district_performance(snapshot),
        property_types=_label_counts(count_by(snapshot.properties, lambda p: p.property_type)),
        diaspora_locations=diaspora_locations(snapshot.inquiries),
        plot_intelligence=build_plot_intelligence(snapshot),
        system_health=system_health,
    )
