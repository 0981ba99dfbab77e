from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from malawi_properties_service.schemas.records import (
    Agent,
    Inquiry,
    Profile,
    Property,
    PropertySummary,
)


class LabelCount(BaseModel):
    label: str
    count: int


class LabelShare(LabelCount):
    percentage: float


# --- Admin dashboard ---
class AdminStats(BaseModel):
    total_users: int
    total_agents: int
    total_properties: int
    total_inquiries: int
    total_views: int
    total_sales: int
    estimated_market_value: float
    diaspora_percentage: float
    average_time_to_sale: int = Field(..., description="Whole days, rounded")
    inquiry_rate: float
    view_to_inquiry_rate: float
    active_users_7d: int
    active_users_30d: int
    most_active_property_type: str


class SegmentSummary(BaseModel):
    count: int
    percentage: float
    average_budget: int
    top_districts: List[LabelCount]


class SegmentComparison(BaseModel):
    diaspora: SegmentSummary
    local: SegmentSummary
    top_local_cities: List[LabelCount]


class BuyerJourney(BaseModel):
    views: int
    inquiries: int
    estimated_direct_calls: int


class PropertyPerformance(BaseModel):
    id: str
    title: str
    district: str
    status: str
    views_count: int
    inquiries_count: int
    performance_score: int


class ActivityItem(BaseModel):
    type: Literal["property_listed", "inquiry", "user_signup"]
    description: str
    timestamp: datetime
    actor: str


class InquiryFunnel(BaseModel):
    views: int
    inquiries: int
    visits: int
    sales: int


class WeeklyTrend(BaseModel):
    week: date
    properties: int
    inquiries: int
    sales: int
    views: int
    value: float = 0.0


class DistrictPerformance(BaseModel):
    district: str
    listings: int
    sold: int
    total_sale_value: float
    average_sale_price: int
    local_buyers: int
    diaspora_buyers: int
    sales_rate: int
    views: int
    inquiries: int


class SystemHealth(BaseModel):
    api_response_time_ms: int
    database_connected: bool


# --- Plot intelligence ---
class PlotPriceByDistrict(BaseModel):
    district: str
    category: str
    average_price: int
    plot_count: int
    average_size: int
    total_views: int
    total_inquiries: int


class CommonPlotSize(BaseModel):
    district: str
    most_common_size: int
    frequency: int
    total_plots: int
    average_price: int
    percentage: int


class DiasporaPlotPreference(BaseModel):
    location: str
    preferred_category: str
    preferred_size: str
    inquiry_count: int
    total_inquiries: int
    percentage: int


class MonthlyPlotPrice(BaseModel):
    month: str
    average_price: int
    plot_count: int


class PlotDemand(BaseModel):
    category: str
    listings: int
    average_views: int
    average_inquiries: float
    conversion_rate: int
    average_sold_price: int
    inquiry_rate: float


class PlotIntelligence(BaseModel):
    has_land_properties: bool
    price_by_district: List[PlotPriceByDistrict]
    common_sizes: List[CommonPlotSize]
    size_distribution: List[LabelCount]
    diaspora_preferences: List[DiasporaPlotPreference]
    price_trends: List[MonthlyPlotPrice]
    size_demand: List[PlotDemand]


class AdminDashboardReport(BaseModel):
    generated_at: datetime
    stats: AdminStats
    segments: SegmentComparison
    buyer_journey: BuyerJourney
    top_performing: List[PropertyPerformance]
    needs_attention: List[PropertyPerformance]
    real_time_activity: List[ActivityItem]
    traffic_sources: List[LabelShare]
    inquiry_funnel: InquiryFunnel
    weekly_trends: List[WeeklyTrend]
    recent_properties: List[Property]
    recent_inquiries: List[Inquiry]
    recent_users: List[Profile]
    pending_verifications: List[Agent]
    districts: List[DistrictPerformance]
    property_types: List[LabelCount]
    diaspora_locations: List[LabelCount]
    plot_intelligence: PlotIntelligence
    system_health: Optional[SystemHealth] = None


# --- Search and journey analytics ---
class SearchTerm(BaseModel):
    search: str
    count: int
    conversion_rate: float


class SearchIntelligence(BaseModel):
    top_searches: List[SearchTerm]
    district_searches: List[LabelCount]
    price_range_searches: List[LabelCount]
    search_to_view_rate: float
    search_to_inquiry_rate: float


class FunnelStage(BaseModel):
    stage: Literal["searches", "views", "detail_views", "inquiries"]
    count: int
    conversion_rate: Optional[float] = Field(
        None, description="Percent of the preceding stage; null for the first stage"
    )


class UserJourney(BaseModel):
    average_views_per_session: float
    average_searches_per_session: float
    average_inquiries_per_session: float
    conversion_funnel: List[FunnelStage]
    average_session_duration: int


class HourBucket(BaseModel):
    hour: int
    count: int


class DayBucket(BaseModel):
    day: str
    count: int


class TimeBasedAnalytics(BaseModel):
    hourly_views: List[HourBucket]
    daily_views: List[DayBucket]
    hourly_inquiries: List[HourBucket]
    daily_inquiries: List[DayBucket]


class DeviceAnalytics(BaseModel):
    mobile_views: int
    desktop_views: int
    mobile_percentage: float
    desktop_percentage: float


class AnalyticsReport(BaseModel):
    generated_at: datetime
    total_properties: int
    total_users: int
    total_inquiries: int
    total_views: int
    total_searches: int
    total_sessions: int
    average_time_to_sale: int
    top_districts: List[LabelCount]
    property_type_distribution: List[LabelCount]
    diaspora_percentage: float
    recent_inquiries: List[Inquiry]
    hot_properties: List[Property]
    search_intelligence: SearchIntelligence
    user_journey: UserJourney
    time_based: TimeBasedAnalytics
    devices: DeviceAnalytics


# --- Market intelligence ---
class DistrictIntelligence(BaseModel):
    district: str
    total_listings: int
    total_sales: int
    average_price: float
    average_time_to_sale: float
    total_views: int
    total_inquiries: int
    diaspora_inquiry_percentage: float
    hotness_score: float
    heat_level: Literal["hot", "warm", "mild", "cool"]


class AgentPerformance(BaseModel):
    agent_id: str
    agent_name: str
    company_name: Optional[str] = None
    total_listings: int
    total_sales: int
    conversion_rate: float
    average_time_to_sale: float
    total_inquiries: int
    rating: float
    districts_covered: List[str]


class DiasporaPattern(BaseModel):
    location: str
    inquiry_count: int
    preferred_districts: List[str]
    preferred_property_types: List[str]
    average_budget: Optional[int] = None


class MarketIntelligenceReport(BaseModel):
    generated_at: datetime
    districts: List[DistrictIntelligence]
    agents: List[AgentPerformance]
    diaspora_patterns: List[DiasporaPattern]


# --- Agent / owner dashboard ---
class ListingStats(BaseModel):
    total_views: int
    total_inquiries: int
    total_value: float
    total_sales: int
    conversion_rate: float
    average_time_to_sale: int


class OwnerDashboard(BaseModel):
    profile: Profile
    agent: Optional[Agent] = None
    properties: List[Property]
    inquiries: List[Inquiry]
    stats: ListingStats


class BuyerDashboard(BaseModel):
    profile: Profile
    inquiries: List[Inquiry]
    viewed_properties: List[PropertySummary]
