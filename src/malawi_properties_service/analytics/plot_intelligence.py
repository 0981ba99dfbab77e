"""
Plot intelligence: pricing, sizing and demand figures for land listings.

Only land with a positive ``plot_size`` takes part. Every table is keyed off
the fixed five-bucket size partition in ``metrics.categorize_plot_size``.
"""

from collections import defaultdict
from datetime import timezone
from typing import Dict, List, Tuple

from malawi_properties_service.analytics.metrics import (
    PLOT_SIZE_CATEGORIES,
    PlotSizeCategory,
    categorize_plot_size,
    js_round,
    rank,
    safe_mean,
)
from malawi_properties_service.analytics.snapshot import MarketplaceSnapshot
from malawi_properties_service.schemas.analytics_schemas import (
    CommonPlotSize,
    DiasporaPlotPreference,
    LabelCount,
    MonthlyPlotPrice,
    PlotDemand,
    PlotIntelligence,
    PlotPriceByDistrict,
)
from malawi_properties_service.schemas.records import Property, PropertyType

PREFERRED_SIZE_LABELS: Dict[PlotSizeCategory, str] = {
    PlotSizeCategory.SMALL: "<400sqm",
    PlotSizeCategory.STANDARD: "400-500sqm",
    PlotSizeCategory.MEDIUM: "500-700sqm",
    PlotSizeCategory.LARGE: "700-1000sqm",
    PlotSizeCategory.EXTRA_LARGE: ">1000sqm",
}


def land_plots(properties: List[Property]) -> List[Property]:
    return [
        p
        for p in properties
        if p.property_type == PropertyType.LAND and p.plot_size and p.plot_size > 0
    ]


def price_by_district(plots: List[Property]) -> List[PlotPriceByDistrict]:
    groups: Dict[Tuple[str, PlotSizeCategory], List[Property]] = defaultdict(list)
    for p in plots:
        groups[(p.district, categorize_plot_size(p.plot_size))].append(p)

    rows = [
        PlotPriceByDistrict(
            district=district,
            category=category.value,
            average_price=int(js_round(safe_mean(p.price for p in members))),
            plot_count=len(members),
            average_size=int(js_round(safe_mean(p.plot_size for p in members))),
            total_views=sum(p.views_count for p in members),
            total_inquiries=sum(p.inquiries_count for p in members),
        )
        for (district, category), members in groups.items()
    ]
    return rank(rows, score=lambda r: r.average_price, label=lambda r: f"{r.district}|{r.category}")


def common_sizes(plots: List[Property]) -> List[CommonPlotSize]:
    by_district: Dict[str, Dict[int, List[Property]]] = defaultdict(lambda: defaultdict(list))
    for p in plots:
        by_district[p.district][int(js_round(p.plot_size))].append(p)

    rows = []
    for district, sizes in by_district.items():
        # Most frequent rounded size; smaller size wins a tie
        size, members = min(sizes.items(), key=lambda item: (-len(item[1]), item[0]))
        total = sum(len(m) for m in sizes.values())
        rows.append(
            CommonPlotSize(
                district=district,
                most_common_size=size,
                frequency=len(members),
                total_plots=total,
                average_price=int(js_round(sum(p.price for p in members) / len(members))),
                percentage=int(js_round(len(members) / total * 100)),
            )
        )
    return rank(rows, score=lambda r: r.frequency, label=lambda r: r.district)


def size_distribution(plots: List[Property]) -> List[LabelCount]:
    counts = {category: 0 for category in PLOT_SIZE_CATEGORIES}
    for p in plots:
        counts[categorize_plot_size(p.plot_size)] += 1
    return [LabelCount(label=c.value, count=n) for c, n in counts.items()]


def diaspora_preferences(snapshot: MarketplaceSnapshot) -> List[DiasporaPlotPreference]:
    properties = snapshot.properties_by_id()
    counts: Dict[str, Dict[PlotSizeCategory, int]] = defaultdict(lambda: defaultdict(int))

    for inquiry in snapshot.inquiries:
        profile = inquiry.profile
        if not (profile and profile.is_diaspora and profile.current_location):
            continue
        prop = properties.get(inquiry.property_id)
        if prop is None or prop.property_type != PropertyType.LAND or not prop.plot_size:
            continue
        counts[profile.current_location][categorize_plot_size(prop.plot_size)] += 1

    rows = []
    for location, by_category in counts.items():
        top_category, top_count = min(
            by_category.items(), key=lambda item: (-item[1], item[0].value)
        )
        total = sum(by_category.values())
        rows.append(
            DiasporaPlotPreference(
                location=location,
                preferred_category=top_category.value,
                preferred_size=PREFERRED_SIZE_LABELS[top_category],
                inquiry_count=top_count,
                total_inquiries=total,
                percentage=int(js_round(top_count / total * 100)),
            )
        )
    return rank(rows, score=lambda r: r.total_inquiries, label=lambda r: r.location)


def price_trends(plots: List[Property], months: int = 12) -> List[MonthlyPlotPrice]:
    by_month: Dict[str, List[float]] = defaultdict(list)
    for p in plots:
        if p.created_at is None:
            continue
        by_month[p.created_at.astimezone(timezone.utc).strftime("%Y-%m")].append(p.price)

    trends = [
        MonthlyPlotPrice(
            month=month,
            average_price=int(js_round(safe_mean(prices))),
            plot_count=len(prices),
        )
        for month, prices in sorted(by_month.items())
    ]
    return trends[-months:]


def size_demand(plots: List[Property]) -> List[PlotDemand]:
    groups: Dict[PlotSizeCategory, List[Property]] = defaultdict(list)
    for p in plots:
        groups[categorize_plot_size(p.plot_size)].append(p)

    rows = []
    for category, members in groups.items():
        listings = len(members)
        total_views = sum(p.views_count for p in members)
        total_inquiries = sum(p.inquiries_count for p in members)
        sold_prices = [p.price for p in members if p.is_sold]
        rows.append(
            PlotDemand(
                category=category.value,
                listings=listings,
                average_views=int(js_round(total_views / listings)),
                average_inquiries=js_round(total_inquiries / listings, 2),
                conversion_rate=int(js_round(len(sold_prices) / listings * 100)),
                average_sold_price=int(js_round(safe_mean(sold_prices))),
                inquiry_rate=js_round(total_inquiries / max(total_views, 1) * 100, 2),
            )
        )
    return rank(rows, score=lambda r: r.average_inquiries, label=lambda r: r.category)


def build_plot_intelligence(snapshot: MarketplaceSnapshot) -> PlotIntelligence:
    plots = land_plots(snapshot.properties)
    return PlotIntelligence(
        has_land_properties=bool(plots),
        price_by_district=price_by_district(plots),
        common_sizes=common_sizes(plots),
        size_distribution=size_distribution(plots),
        diaspora_preferences=diaspora_preferences(snapshot),
        price_trends=price_trends(plots),
        size_demand=size_demand(plots),
    )
