from dataclasses import dataclass, field
from typing import Dict, List

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


@dataclass
class MarketplaceSnapshot:
    """
    Everything a report needs, fetched up front in one round of parallel
    queries. Report builders only read from it.
    """

    profiles: List[Profile] = field(default_factory=list)
    agents: List[Agent] = field(default_factory=list)
    properties: List[Property] = field(default_factory=list)
    inquiries: List[Inquiry] = field(default_factory=list)
    views: List[PropertyView] = field(default_factory=list)
    searches: List[SearchQuery] = field(default_factory=list)
    sessions: List[UserSession] = field(default_factory=list)
    traffic: List[TrafficSource] = field(default_factory=list)

    def properties_by_id(self) -> Dict[str, Property]:
        return {p.id: p for p in self.properties}
