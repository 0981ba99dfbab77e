"""
Shared metric helpers used by every report builder.

The helpers reproduce the dashboard arithmetic exactly: JavaScript-style
rounding (half up), zero-guarded percentages and whole-day differences.
"""

import math
import re
from collections import Counter
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Tuple, TypeVar

from malawi_properties_service.schemas.records import Inquiry, OriginType, Property

T = TypeVar("T")

_BUDGET_NUMBER = re.compile(r"\d+")


class PlotSizeCategory(str, Enum):
    SMALL = "Small (<400sqm)"
    STANDARD = "Standard (400-500sqm)"
    MEDIUM = "Medium (500-700sqm)"
    LARGE = "Large (700-1000sqm)"
    EXTRA_LARGE = "Extra Large (>1000sqm)"


# Fixed presentation order for distribution tables
PLOT_SIZE_CATEGORIES: Tuple[PlotSizeCategory, ...] = tuple(PlotSizeCategory)


def js_round(value: float, digits: int = 0) -> float:
    """
    Round half up, matching ``Math.round(value * 10**digits) / 10**digits``.

    Args:
        value: The number to round
        digits: Decimal places to keep

    Returns:
        The rounded number. With ``digits == 0`` the result is still a float;
        use ``int()`` when a whole count is needed.

    Examples:
        >>> js_round(2.5)
        3.0
        >>> js_round(66.6666, 2)
        66.67
    """
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def safe_percentage(numerator: float, denominator: float) -> float:
    """``numerator / denominator * 100``, or 0 when the denominator is not positive."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator * 100


def safe_mean(values: Iterable[float]) -> float:
    values = list(values)
    if not values:
        return 0.0
    return sum(values) / len(values)


def classify_buyer_origin(
    explicit_origin: Optional[OriginType | str],
    profile_is_diaspora: Optional[bool] = None,
    country: Optional[str] = None,
) -> OriginType:
    """
    Classify a buyer or viewer as diaspora or local.

    An explicit origin always wins. Otherwise a profile flagged as diaspora
    makes the buyer diaspora, and failing that a declared country other than
    Malawi (case-insensitive) does. Everything else is local.
    """
    if explicit_origin:
        return OriginType(explicit_origin)
    if profile_is_diaspora:
        return OriginType.DIASPORA
    if country and country.strip().lower() != "malawi":
        return OriginType.DIASPORA
    return OriginType.LOCAL


def inquiry_origin(inquiry: Inquiry) -> OriginType:
    profile = inquiry.profile
    return classify_buyer_origin(
        inquiry.buyer_origin_type,
        profile.is_diaspora if profile else None,
        inquiry.buyer_country,
    )


def categorize_plot_size(square_meters: float) -> PlotSizeCategory:
    """
    Bucket a plot by area. Boundary values belong to the lower bucket:
    400 and 500 are standard, 700 is medium, 1000 is large.
    """
    if square_meters < 400:
        return PlotSizeCategory.SMALL
    if square_meters <= 500:
        return PlotSizeCategory.STANDARD
    if square_meters <= 700:
        return PlotSizeCategory.MEDIUM
    if square_meters <= 1000:
        return PlotSizeCategory.LARGE
    return PlotSizeCategory.EXTRA_LARGE


def hotness_score(inquiries: int, views: int, listings: int) -> float:
    """District demand intensity: ``(inquiries * 2 + views * 0.1) / listings``."""
    if listings <= 0:
        return 0.0
    return (inquiries * 2 + views * 0.1) / listings


def whole_days_between(start: datetime, end: datetime) -> int:
    return math.floor((end - start).total_seconds() / 86400)


def average_time_to_sale(properties: Iterable[Property]) -> float:
    """
    Mean whole days from listing to sale over sold properties that carry both
    timestamps. Returns 0 when no property qualifies; callers round as needed.
    """
    durations = [
        whole_days_between(p.listed_at, p.sold_at)
        for p in properties
        if p.is_sold and p.listed_at and p.sold_at
    ]
    return safe_mean(durations)


def parse_budget(budget_range: Optional[str]) -> Optional[int]:
    """
    Read the first integer out of a free-text budget such as ``"5000000-10000000"``.
    Non-positive or missing budgets return None.
    """
    if not budget_range:
        return None
    match = _BUDGET_NUMBER.search(budget_range)
    if not match:
        return None
    value = int(match.group())
    return value if value > 0 else None


def count_by(items: Iterable[T], key: Callable[[T], Optional[Hashable]]) -> Dict[Hashable, int]:
    """Count items per key, skipping items whose key is None."""
    counts: Counter = Counter()
    for item in items:
        k = key(item)
        if k is not None:
            counts[k] += 1
    return dict(counts)


def label_of(key: Hashable) -> str:
    """Display label for a grouping key; enum members use their value."""
    if isinstance(key, Enum):
        return str(key.value)
    return str(key)


def rank(items: Iterable[T], score: Callable[[T], float], label: Callable[[T], str], limit: Optional[int] = None) -> List[T]:
    """
    Sort descending by score; equal scores are ordered alphabetically by label.
    """
    ranked = sorted(items, key=lambda item: (-score(item), label(item)))
    return ranked[:limit] if limit is not None else ranked


def top_counts(counts: Dict[Hashable, int], limit: Optional[int] = None) -> List[Tuple[str, int]]:
    """Rank a ``{label: count}`` mapping, ties broken alphabetically."""
    pairs = [(label_of(k), v) for k, v in counts.items()]
    return rank(pairs, score=lambda p: p[1], label=lambda p: p[0], limit=limit)


def newest_first(items: Iterable[T], limit: Optional[int] = None) -> List[T]:
    """Sort records by ``created_at`` descending; undated records go last."""
    ranked = sorted(
        items,
        key=lambda item: item.created_at.timestamp() if item.created_at else float("-inf"),
        reverse=True,
    )
    return ranked[:limit] if limit is not None else ranked
