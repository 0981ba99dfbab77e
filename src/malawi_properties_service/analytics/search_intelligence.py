"""
Buyer-behaviour analytics: search intelligence, session journeys, time-of-day
patterns and device split.
"""

from collections import Counter, defaultdict
from datetime import datetime, tzinfo
from typing import Dict, Iterable, List, Optional

from malawi_properties_service.analytics.metrics import (
    average_time_to_sale,
    count_by,
    inquiry_origin,
    js_round,
    newest_first,
    rank,
    safe_mean,
    safe_percentage,
    top_counts,
)
from malawi_properties_service.analytics.snapshot import MarketplaceSnapshot
from malawi_properties_service.schemas.analytics_schemas import (
    AnalyticsReport,
    DayBucket,
    DeviceAnalytics,
    FunnelStage,
    HourBucket,
    LabelCount,
    SearchIntelligence,
    SearchTerm,
    TimeBasedAnalytics,
    UserJourney,
)
from malawi_properties_service.schemas.records import OriginType, SearchQuery, UserSession

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
FUNNEL_STAGES = ("searches", "views", "detail_views", "inquiries")


def _param(params: Dict, *names: str) -> Optional[str]:
    for name in names:
        value = params.get(name)
        if value not in (None, ""):
            return str(value)
    return None


def price_range_label(params: Dict) -> Optional[str]:
    """``"min - max"`` for searches that set a price bound; open bounds read 0 and ∞."""
    min_price = _param(params, "minPrice", "min_price")
    max_price = _param(params, "maxPrice", "max_price")
    if min_price is None and max_price is None:
        return None
    return f"{min_price or '0'} - {max_price or '∞'}"


def search_intelligence(searches: List[SearchQuery]) -> SearchIntelligence:
    terms: Dict[str, List[int]] = defaultdict(lambda: [0, 0])
    for sq in searches:
        if sq.search_text:
            entry = terms[sq.search_text.lower()]
            entry[0] += 1
            if sq.converted_to_inquiry:
                entry[1] += 1

    top_searches = rank(
        [
            SearchTerm(search=text, count=count, conversion_rate=safe_percentage(conversions, count))
            for text, (count, conversions) in terms.items()
        ],
        score=lambda t: t.count,
        label=lambda t: t.search,
        limit=10,
    )

    districts = count_by(searches, lambda sq: _param(sq.search_params, "district"))
    price_ranges = count_by(searches, lambda sq: price_range_label(sq.search_params))

    total = len(searches)
    with_views = sum(1 for sq in searches if sq.viewed_property_ids)
    with_inquiries = sum(1 for sq in searches if sq.converted_to_inquiry)

    return SearchIntelligence(
        top_searches=top_searches,
        district_searches=[LabelCount(label=l, count=c) for l, c in top_counts(districts, 10)],
        price_range_searches=[LabelCount(label=l, count=c) for l, c in top_counts(price_ranges, 10)],
        search_to_view_rate=safe_percentage(with_views, total),
        search_to_inquiry_rate=safe_percentage(with_inquiries, total),
    )


def conversion_funnel(sessions: Iterable[UserSession]) -> List[FunnelStage]:
    """
    Sum the per-session funnel counters. Each stage's rate is relative to the
    stage immediately before it, never to the top of the funnel.
    """
    totals = Counter()
    for session in sessions:
        funnel = session.conversion_funnel
        for stage in FUNNEL_STAGES:
            totals[stage] += getattr(funnel, stage)

    stages: List[FunnelStage] = []
    previous: Optional[int] = None
    for stage in FUNNEL_STAGES:
        count = totals[stage]
        rate = None if previous is None else safe_percentage(count, previous)
        stages.append(FunnelStage(stage=stage, count=count, conversion_rate=rate))
        previous = count
    return stages


def user_journey(snapshot: MarketplaceSnapshot) -> UserJourney:
    sessions = len(snapshot.sessions)

    def per_session(total: int) -> float:
        return js_round(total / sessions, 1) if sessions else 0.0

    durations = [s.duration_seconds for s in snapshot.sessions if s.duration_seconds > 0]
    return UserJourney(
        average_views_per_session=per_session(len(snapshot.views)),
        average_searches_per_session=per_session(len(snapshot.searches)),
        average_inquiries_per_session=per_session(len(snapshot.inquiries)),
        conversion_funnel=conversion_funnel(snapshot.sessions),
        average_session_duration=int(js_round(safe_mean(durations))),
    )


def _hourly(timestamps: Iterable[datetime], tz: tzinfo) -> List[HourBucket]:
    counts = Counter(ts.astimezone(tz).hour for ts in timestamps)
    return [HourBucket(hour=h, count=counts.get(h, 0)) for h in range(24)]


def _daily(timestamps: Iterable[datetime], tz: tzinfo) -> List[DayBucket]:
    counts = Counter(ts.astimezone(tz).weekday() for ts in timestamps)
    return [DayBucket(day=WEEKDAYS[d], count=counts[d]) for d in range(7) if d in counts]


def time_based(snapshot: MarketplaceSnapshot, tz: tzinfo) -> TimeBasedAnalytics:
    view_times = [v.timestamp for v in snapshot.views if v.timestamp]
    inquiry_times = [i.created_at for i in snapshot.inquiries if i.created_at]
    return TimeBasedAnalytics(
        hourly_views=_hourly(view_times, tz),
        daily_views=_daily(view_times, tz),
        hourly_inquiries=_hourly(inquiry_times, tz),
        daily_inquiries=_daily(inquiry_times, tz),
    )


def device_split(snapshot: MarketplaceSnapshot) -> DeviceAnalytics:
    total = len(snapshot.views)
    mobile = sum(1 for v in snapshot.views if v.device_type == "mobile")
    desktop = sum(1 for v in snapshot.views if v.device_type == "desktop")
    return DeviceAnalytics(
        mobile_views=mobile,
        desktop_views=desktop,
        mobile_percentage=safe_percentage(mobile, total),
        desktop_percentage=safe_percentage(desktop, total),
    )


def build_analytics_report(snapshot: MarketplaceSnapshot, now: datetime, tz: tzinfo) -> AnalyticsReport:
    inquiries = snapshot.inquiries
    diaspora = sum(1 for i in inquiries if inquiry_origin(i) == OriginType.DIASPORA)

    return AnalyticsReport(
        generated_at=now,
        total_properties=len(snapshot.properties),
        total_users=len(snapshot.profiles),
        total_inquiries=len(inquiries),
        total_views=len(snapshot.views),
        total_searches=len(snapshot.searches),
        total_sessions=len(snapshot.sessions),
        average_time_to_sale=int(js_round(average_time_to_sale(snapshot.properties))),
        top_districts=[
            LabelCount(label=l, count=c)
            for l, c in top_counts(count_by(snapshot.properties, lambda p: p.district), 5)
        ],
        property_type_distribution=[
            LabelCount(label=l, count=c)
            for l, c in top_counts(count_by(snapshot.properties, lambda p: p.property_type))
        ],
        diaspora_percentage=safe_percentage(diaspora, len(inquiries)),
        recent_inquiries=newest_first(inquiries, 10),
        hot_properties=rank(
            snapshot.properties,
            score=lambda p: p.inquiries_count,
            label=lambda p: p.title,
            limit=5,
        ),
        search_intelligence=search_intelligence(snapshot.searches),
        user_journey=user_journey(snapshot),
        time_based=time_based(snapshot, tz),
        devices=device_split(snapshot),
    )
