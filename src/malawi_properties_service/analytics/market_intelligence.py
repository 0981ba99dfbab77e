"""
Market intelligence: district demand heat, agent league table and diaspora
buying patterns.
"""

from datetime import datetime
from typing import Dict, List

from malawi_properties_service.analytics.metrics import (
    average_time_to_sale,
    count_by,
    hotness_score,
    inquiry_origin,
    js_round,
    parse_budget,
    rank,
    safe_mean,
    safe_percentage,
    top_counts,
)
from malawi_properties_service.analytics.snapshot import MarketplaceSnapshot
from malawi_properties_service.schemas.analytics_schemas import (
    AgentPerformance,
    DiasporaPattern,
    DistrictIntelligence,
    MarketIntelligenceReport,
)
from malawi_properties_service.schemas.records import Inquiry, OriginType, Property


def heat_level(score: float) -> str:
    if score > 5:
        return "hot"
    if score > 2:
        return "warm"
    if score > 1:
        return "mild"
    return "cool"


def _closed_sales(properties: List[Property]) -> List[Property]:
    return [p for p in properties if p.is_sold and p.sold_at]


def district_intelligence(snapshot: MarketplaceSnapshot) -> List[DistrictIntelligence]:
    listings: Dict[str, List[Property]] = {}
    for p in snapshot.properties:
        listings.setdefault(p.district, []).append(p)

    views = count_by(snapshot.views, lambda v: v.listing.district if v.listing else None)
    inquiries: Dict[str, List[Inquiry]] = {}
    for i in snapshot.inquiries:
        district = i.listing.district if i.listing else None
        if district in listings:
            inquiries.setdefault(district, []).append(i)

    rows = []
    for district, props in listings.items():
        district_inquiries = inquiries.get(district, [])
        diaspora = sum(1 for i in district_inquiries if inquiry_origin(i) == OriginType.DIASPORA)
        total_views = views.get(district, 0)
        score = hotness_score(len(district_inquiries), total_views, len(props))
        rows.append(
            DistrictIntelligence(
                district=district,
                total_listings=len(props),
                total_sales=len(_closed_sales(props)),
                average_price=safe_mean(p.price for p in props),
                average_time_to_sale=average_time_to_sale(props),
                total_views=total_views,
                total_inquiries=len(district_inquiries),
                diaspora_inquiry_percentage=safe_percentage(diaspora, len(district_inquiries)),
                hotness_score=score,
                heat_level=heat_level(score),
            )
        )
    return rank(rows, score=lambda r: r.hotness_score, label=lambda r: r.district)


def agent_performance(snapshot: MarketplaceSnapshot, limit: int = 10) -> List[AgentPerformance]:
    inquiries_per_property = count_by(snapshot.inquiries, lambda i: i.property_id)

    rows = []
    for agent in snapshot.agents:
        props = agent.properties
        sales = len(_closed_sales(props))
        rows.append(
            AgentPerformance(
                agent_id=agent.id,
                agent_name=(agent.profile.full_name if agent.profile else None) or "Unknown",
                company_name=agent.company_name,
                total_listings=len(props),
                total_sales=sales,
                conversion_rate=safe_percentage(sales, len(props)),
                average_time_to_sale=average_time_to_sale(props),
                total_inquiries=sum(inquiries_per_property.get(p.id, 0) for p in props),
                rating=agent.rating,
                districts_covered=agent.districts_covered,
            )
        )
    return rank(rows, score=lambda r: r.conversion_rate, label=lambda r: r.agent_name, limit=limit)


def diaspora_patterns(inquiries: List[Inquiry]) -> List[DiasporaPattern]:
    by_location: Dict[str, List[Inquiry]] = {}
    for i in inquiries:
        if i.profile and i.profile.is_diaspora and i.profile.current_location:
            by_location.setdefault(i.profile.current_location, []).append(i)

    rows = []
    for location, group in by_location.items():
        districts = count_by(group, lambda i: i.listing.district if i.listing else None)
        types = count_by(group, lambda i: i.listing.property_type if i.listing else None)
        budgets = [b for b in (parse_budget(i.budget_range) for i in group) if b is not None]
        rows.append(
            DiasporaPattern(
                location=location,
                inquiry_count=len(group),
                preferred_districts=[label for label, _ in top_counts(districts, 3)],
                preferred_property_types=[label for label, _ in top_counts(types, 3)],
                average_budget=int(js_round(safe_mean(budgets))) if budgets else None,
            )
        )
    return rank(rows, score=lambda r: r.inquiry_count, label=lambda r: r.location)


def build_market_intelligence(snapshot: MarketplaceSnapshot, now: datetime) -> MarketIntelligenceReport:
    return MarketIntelligenceReport(
        generated_at=now,
        districts=district_intelligence(snapshot),
        agents=agent_performance(snapshot),
        diaspora_patterns=diaspora_patterns(snapshot.inquiries),
    )
