"""
Classification Matrix
=====================
Resolves, per destination city, how many incoming events must arrive from
origin cities of each classification (A/B/C).

Requirement values are per-origin-city quotas:

    incoming_total(d) = from_a * countA' + from_b * countB' + from_c * countC'

where countX' is the number of active cities of classification X, minus one
when the destination itself is of classification X (a city never sends to
itself).
"""
import logging
from typing import Dict, Iterable, List, Optional

from .models import City, CityAllocationRequirement, Classification

logger = logging.getLogger(__name__)


class ClassificationMatrix:
    """Incoming requirement math for one client's active cities"""

    def origin_counts(self, city: City, all_cities: Iterable[City]) -> Dict[Classification, int]:
        """Active cities per classification, excluding the destination itself"""
        counts = {c: 0 for c in Classification}
        for other in all_cities:
            if other.is_active:
                counts[other.classification] += 1

        if city.is_active and counts[city.classification] > 0:
            counts[city.classification] -= 1
        return counts

    def incoming_total(
        self,
        city: City,
        requirement: Optional[CityAllocationRequirement],
        all_cities: Iterable[City]
    ) -> int:
        """Total events the destination must receive; 0 without a requirement row"""
        if requirement is None:
            return 0

        counts = self.origin_counts(city, all_cities)
        return sum(requirement.quota_for(cls) * counts[cls] for cls in Classification)

    def pair_quota(
        self,
        origin: City,
        destination: City,
        requirement: Optional[CityAllocationRequirement]
    ) -> int:
        """Events one origin city must send to one destination city"""
        if requirement is None or origin.id == destination.id or not origin.is_active:
            return 0
        return requirement.quota_for(origin.classification)

    def incoming_table(
        self,
        cities: List[City],
        requirements: Dict[int, CityAllocationRequirement]
    ) -> List[Dict]:
        """One row per active city, sorted by code, with the adjusted counts shown"""
        active = [c for c in cities if c.is_active]
        rows = []

        for city in sorted(active, key=lambda c: c.code):
            req = requirements.get(city.id)
            counts = self.origin_counts(city, active)
            rows.append({
                'city_code': city.code,
                'city_name': city.name,
                'classification': city.classification.value,
                'from_classification_a': req.from_classification_a if req else 0,
                'from_classification_b': req.from_classification_b if req else 0,
                'from_classification_c': req.from_classification_c if req else 0,
                'origin_cities_a': counts[Classification.A],
                'origin_cities_b': counts[Classification.B],
                'origin_cities_c': counts[Classification.C],
                'total_incoming': self.incoming_total(city, req, active),
            })

        logger.debug(f"Built incoming requirement table for {len(rows)} cities")
        return rows
