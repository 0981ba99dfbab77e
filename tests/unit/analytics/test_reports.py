from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from malawi_properties_service.analytics import (
    MarketplaceSnapshot,
    build_admin_dashboard,
    build_analytics_report,
    build_listing_stats,
    build_market_intelligence,
    unique_viewed_listings,
)
from malawi_properties_service.analytics.market_intelligence import heat_level
from malawi_properties_service.analytics.search_intelligence import conversion_funnel, price_range_label
from malawi_properties_service.schemas.records import (
    Agent,
    Inquiry,
    Profile,
    Property,
    PropertyView,
    SearchQuery,
    TrafficSource,
    UserSession,
)

NOW = datetime(2025, 6, 19, 12, 0, tzinfo=timezone.utc)
BLANTYRE = ZoneInfo("Africa/Blantyre")


def _lilongwe_snapshot() -> MarketplaceSnapshot:
    """Three Lilongwe listings, one sold, two inquiries and fifty views."""
    listed = NOW - timedelta(days=40)
    properties = [
        Property(id="p1", title="Plot A", district="Lilongwe", price=1_000_000, listed_at=listed, created_at=listed),
        Property(
            id="p2",
            title="Plot B",
            district="Lilongwe",
            price=2_000_000,
            status="sold",
            sale_price=2_500_000,
            buyer_type="diaspora",
            listed_at=listed,
            sold_at=listed + timedelta(days=10),
            created_at=listed,
        ),
        Property(id="p3", title="Plot C", district="Lilongwe", price=3_000_000, listed_at=listed, created_at=listed),
    ]
    listing = {"id": "p1", "title": "Plot A", "district": "Lilongwe", "property_type": "land"}
    inquiries = [
        Inquiry(id="i1", property_id="p1", buyer_origin_type="diaspora", properties=listing),
        Inquiry(
            id="i2",
            property_id="p2",
            buyer_origin_type="local",
            properties={**listing, "id": "p2", "title": "Plot B"},
        ),
    ]
    views = [
        PropertyView(id=f"v{n}", property_id="p1", properties=listing, viewed_at=NOW - timedelta(days=1))
        for n in range(50)
    ]
    return MarketplaceSnapshot(properties=properties, inquiries=inquiries, views=views)


def test_lilongwe_market_intelligence():
    report = build_market_intelligence(_lilongwe_snapshot(), NOW)

    assert len(report.districts) == 1
    lilongwe = report.districts[0]
    # Average uses listing prices, not the sale price
    assert lilongwe.average_price == pytest.approx(2_000_000)
    assert lilongwe.total_sales == 1
    assert lilongwe.total_listings == 3
    assert lilongwe.total_inquiries == 2
    assert lilongwe.total_views == 50
    assert lilongwe.diaspora_inquiry_percentage == 50
    assert lilongwe.hotness_score == pytest.approx((2 * 2 + 50 * 0.1) / 3)
    assert lilongwe.heat_level == "warm"


def test_lilongwe_admin_stats():
    report = build_admin_dashboard(_lilongwe_snapshot(), NOW, BLANTYRE)

    assert report.stats.total_properties == 3
    assert report.stats.total_sales == 1
    assert report.stats.inquiry_rate == 66.67
    assert report.stats.view_to_inquiry_rate == 4.0
    assert report.stats.average_time_to_sale == 10
    assert report.stats.estimated_market_value == 4_000_000
    assert report.stats.diaspora_percentage == 50

    district = report.districts[0]
    assert district.sold == 1
    assert district.average_sale_price == 2_500_000
    assert district.diaspora_buyers == 1
    assert district.sales_rate == 33


def test_admin_dashboard_on_empty_snapshot():
    report = build_admin_dashboard(MarketplaceSnapshot(), NOW, BLANTYRE)

    assert report.stats.inquiry_rate == 0
    assert report.stats.view_to_inquiry_rate == 0
    assert report.stats.most_active_property_type == "N/A"
    assert report.traffic_sources == []
    assert report.plot_intelligence.has_land_properties is False
    assert [row.count for row in report.plot_intelligence.size_distribution] == [0, 0, 0, 0, 0]


def test_admin_dashboard_segments_and_funnel():
    inquiries = [
        Inquiry(id="i1", property_id="p1", buyer_origin_type="diaspora", budget_range="10000000-20000000"),
        Inquiry(id="i2", property_id="p1", buyer_country="Malawi", local_origin_city="Blantyre"),
        Inquiry(id="i3", property_id="p1", profiles={"is_diaspora": True, "current_location": "London, UK"}),
    ]
    report = build_admin_dashboard(MarketplaceSnapshot(inquiries=inquiries), NOW, BLANTYRE)

    assert report.segments.diaspora.count == 2
    assert report.segments.diaspora.average_budget == 10_000_000
    assert report.segments.local.count == 1
    assert report.segments.top_local_cities[0].label == "Blantyre"
    assert report.inquiry_funnel.visits == 1
    assert report.buyer_journey.estimated_direct_calls == 1
    assert report.diaspora_locations[0].label == "London, UK"


def test_weekly_trends_carry_listing_value():
    sunday = datetime(2025, 6, 15, 9, 0, tzinfo=timezone.utc)
    properties = [
        Property(id="p1", district="Lilongwe", price=1_500_000, created_at=sunday),
        Property(id="p2", district="Lilongwe", price=2_500_000, status="sold", created_at=sunday + timedelta(days=2)),
        Property(id="p3", district="Zomba", price=9_000_000, created_at=NOW - timedelta(weeks=13)),
    ]
    report = build_admin_dashboard(MarketplaceSnapshot(properties=properties), NOW, BLANTYRE)

    (week,) = report.weekly_trends
    assert week.week.isoformat() == "2025-06-15"
    assert week.properties == 2
    assert week.sales == 1
    assert week.value == 4_000_000


def test_traffic_sources_share():
    traffic = [TrafficSource(session_id=f"s{n}", source="facebook") for n in range(3)]
    traffic.append(TrafficSource(session_id="s9", source=None))
    report = build_admin_dashboard(MarketplaceSnapshot(traffic=traffic), NOW, BLANTYRE)

    assert [(s.label, s.count, s.percentage) for s in report.traffic_sources] == [
        ("facebook", 3, 75.0),
        ("direct", 1, 25.0),
    ]


def test_needs_attention_flags_stale_and_unviewed():
    fresh = Property(id="fresh", title="Fresh", views_count=5)
    stale = Property(id="stale", title="Stale", views_count=5)
    unviewed = Property(id="unviewed", title="Unviewed")
    views = [
        PropertyView(property_id="fresh", viewed_at=NOW - timedelta(days=2)),
        PropertyView(property_id="stale", viewed_at=NOW - timedelta(days=45)),
    ]
    report = build_admin_dashboard(
        MarketplaceSnapshot(properties=[fresh, stale, unviewed], views=views), NOW, BLANTYRE
    )
    assert [p.id for p in report.needs_attention] == ["stale", "unviewed"]


def test_pending_verifications_only():
    agents = [
        Agent(id="a1", user_id="u1", verification_status="pending"),
        Agent(id="a2", user_id="u2", verification_status="verified"),
    ]
    report = build_admin_dashboard(MarketplaceSnapshot(agents=agents), NOW, BLANTYRE)
    assert [a.id for a in report.pending_verifications] == ["a1"]


def test_real_time_activity_covers_last_day():
    snapshot = MarketplaceSnapshot(
        properties=[Property(id="p1", title="New plot", created_at=NOW - timedelta(hours=2))],
        profiles=[
            Profile(id="u1", full_name="Chikondi", created_at=NOW - timedelta(hours=1)),
            Profile(id="u2", full_name="Old", created_at=NOW - timedelta(days=3)),
        ],
    )
    report = build_admin_dashboard(snapshot, NOW, BLANTYRE)
    assert [item.type for item in report.real_time_activity] == ["user_signup", "property_listed"]


@pytest.mark.parametrize("score, level", [(5.1, "hot"), (5.0, "warm"), (2.0, "mild"), (1.0, "cool")])
def test_heat_levels(score, level):
    assert heat_level(score) == level


def test_agent_league_ranks_by_conversion():
    sold = {"id": "x1", "status": "sold", "listed_at": "2025-01-01T00:00:00Z", "sold_at": "2025-01-31T00:00:00Z"}
    agents = [
        Agent(id="a1", user_id="u1", profiles={"full_name": "Banda"}, properties=[sold, {"id": "x2"}]),
        Agent(id="a2", user_id="u2", profiles={"full_name": "Phiri"}, properties=[{"id": "x3"}]),
    ]
    report = build_market_intelligence(MarketplaceSnapshot(agents=agents), NOW)

    assert [a.agent_name for a in report.agents] == ["Banda", "Phiri"]
    assert report.agents[0].conversion_rate == 50
    assert report.agents[0].average_time_to_sale == 30


def test_plot_intelligence_common_size_tie_prefers_smaller():
    plots = [
        Property(id="a", district="Zomba", property_type="land", plot_size=450, price=100),
        Property(id="b", district="Zomba", property_type="land", plot_size=600, price=300),
    ]
    report = build_admin_dashboard(MarketplaceSnapshot(properties=plots), NOW, BLANTYRE)
    common = report.plot_intelligence.common_sizes[0]

    assert common.most_common_size == 450
    assert common.percentage == 50
    assert common.average_price == 100


def test_analytics_report_time_buckets_use_local_time():
    # 23:30 UTC on a Wednesday is 01:30 on Thursday in Blantyre
    late = datetime(2025, 6, 18, 23, 30, tzinfo=timezone.utc)
    snapshot = MarketplaceSnapshot(views=[PropertyView(viewed_at=late, device_type="mobile")])
    report = build_analytics_report(snapshot, NOW, BLANTYRE)

    hourly = {bucket.hour: bucket.count for bucket in report.time_based.hourly_views}
    assert hourly[1] == 1
    assert [d.day for d in report.time_based.daily_views] == ["Thu"]
    assert report.devices.mobile_percentage == 100


def test_search_intelligence():
    searches = [
        SearchQuery(search_text="Area 47", search_params={"district": "Lilongwe"}, converted_to_inquiry=True),
        SearchQuery(search_text="area 47", search_params={"minPrice": 1000}, viewed_property_ids=["p1"]),
        SearchQuery(search_params={"maxPrice": "5000"}),
    ]
    report = build_analytics_report(MarketplaceSnapshot(searches=searches), NOW, BLANTYRE)
    intelligence = report.search_intelligence

    assert intelligence.top_searches[0].search == "area 47"
    assert intelligence.top_searches[0].count == 2
    assert intelligence.top_searches[0].conversion_rate == 50
    assert intelligence.district_searches[0].label == "Lilongwe"
    assert intelligence.search_to_view_rate == pytest.approx(100 / 3)


def test_price_range_label():
    assert price_range_label({"minPrice": 1000}) == "1000 - ∞"
    assert price_range_label({"max_price": 5000}) == "0 - 5000"
    assert price_range_label({}) is None


def test_conversion_funnel_rates_are_stage_to_stage():
    sessions = [
        UserSession(conversion_funnel={"searches": 10, "views": 5, "detail_views": 2, "inquiries": 1}),
        UserSession(conversion_funnel=None),
    ]
    stages = conversion_funnel(sessions)

    assert [s.count for s in stages] == [10, 5, 2, 1]
    assert stages[0].conversion_rate is None
    assert [s.conversion_rate for s in stages[1:]] == [50, 40, 50]


def test_listing_stats():
    properties = [
        Property(id="a", price=100, views_count=10, inquiries_count=2, status="sold"),
        Property(id="b", price=300, views_count=None, inquiries_count=1),
    ]
    stats = build_listing_stats(properties)

    assert stats.total_value == 400
    assert stats.total_views == 10
    assert stats.total_inquiries == 3
    assert stats.conversion_rate == 50


def test_unique_viewed_listings_dedupes_and_skips_deleted():
    views = [
        PropertyView(properties={"id": "p1", "title": "Plot A"}),
        PropertyView(properties=None),
        PropertyView(properties={"id": "p1", "title": "Plot A"}),
        PropertyView(properties={"id": "p2", "title": "House B"}),
    ]
    assert [p.id for p in unique_viewed_listings(views)] == ["p1", "p2"]
