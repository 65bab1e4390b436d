"""
Geographic Roll-up Module

This module aggregates record counts through the Province -> District ->
Sector hierarchy, with cascading scoping from the active filter path.
"""

import logging
from typing import List, Optional, Sequence

import pandas as pd

from .config import Config
from .models import GeoFilters, GeoNode, GeoRollup, GeoSummary, NormalizedRecord
from .normalizer import records_to_frame

logger = logging.getLogger(__name__)

# Provinces holding at least this share of all records count as significant.
SIGNIFICANT_SHARE = 0.10


def _name(value) -> Optional[str]:
    return None if pd.isna(value) else str(value)


def _sort_key(node: GeoNode):
    return (-node.count, node.name, node.district or "", node.province or "")


class GeographicRoller:
    """Hierarchical location counts for the dashboard drill-down."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()

    def _province_nodes(self, df: pd.DataFrame) -> List[GeoNode]:
        counts = df["province"].dropna().value_counts()
        known = self.config.provinces

        nodes = [GeoNode(name=name, count=int(counts.get(name, 0))) for name in known]
        extra = [
            GeoNode(name=str(name), count=int(count))
            for name, count in counts.items()
            if name not in known
        ]
        if extra:
            logger.debug("Found %d province names outside the known set", len(extra))
        return nodes + sorted(extra, key=_sort_key)

    def _district_nodes(self, df: pd.DataFrame) -> List[GeoNode]:
        scoped = df[df["district"].notna()]
        if scoped.empty:
            return []
        grouped = scoped.groupby(["district", "province"], dropna=False).size()
        nodes = [
            GeoNode(name=str(district), province=_name(province), count=int(count))
            for (district, province), count in grouped.items()
        ]
        return sorted(nodes, key=_sort_key)

    def _sector_nodes(self, df: pd.DataFrame) -> List[GeoNode]:
        scoped = df[df["sector"].notna()].copy()
        if scoped.empty:
            return []
        # A sector without a district must not claim the record's province as its direct parent.
        scoped.loc[scoped["district"].isna(), "province"] = None
        grouped = scoped.groupby(["sector", "district", "province"], dropna=False).size()
        nodes = [
            GeoNode(name=str(sector), district=_name(district), province=_name(province), count=int(count))
            for (sector, district, province), count in grouped.items()
        ]
        return sorted(nodes, key=_sort_key)

    def _summary(self, provinces: List[GeoNode]) -> GeoSummary:
        total = sum(node.count for node in provinces)
        active = [node for node in provinces if node.count > 0]
        known_count = len(self.config.provinces)

        if not active:
            return GeoSummary(total=total, average_per_province=None if known_count == 0 else 0.0)

        ranked = sorted(active, key=_sort_key)
        return GeoSummary(
            total=total,
            average_per_province=round(total / known_count, 1) if known_count else None,
            active_provinces=len(active),
            most_concentrated=ranked[0].name,
            least_concentrated=ranked[-1].name,
            significant_provinces=sum(1 for node in active if node.count / total >= SIGNIFICANT_SHARE),
        )

    def roll(self, records: Sequence[NormalizedRecord], filters: Optional[GeoFilters] = None) -> GeoRollup:
        """
        Roll record counts up the location hierarchy.

        Args:
            records: Normalized records (unscoped)
            filters: Active drill-down path. Province restricts districts and
                sectors; district further restricts sectors

        Returns:
            GeoRollup with provinces (always the full known set), districts,
            sectors and a summary
        """
        filters = filters or GeoFilters()
        df = records_to_frame(list(records))

        provinces = self._province_nodes(df)

        district_scope = df
        if filters.province is not None:
            district_scope = df[df["province"] == filters.province]

        sector_scope = district_scope
        if filters.district is not None:
            sector_scope = district_scope[district_scope["district"] == filters.district]

        return GeoRollup(
            provinces=provinces,
            districts=self._district_nodes(district_scope),
            sectors=self._sector_nodes(sector_scope),
            summary=self._summary(provinces),
        )


if __name__ == "__main__":
    from .normalizer import normalize

    sample = normalize([
        {"id": "1", "province": "Kigali City", "district": "Gasabo", "sector": "Kimironko"},
        {"id": "2", "province": "Kigali City", "district": "Gasabo", "sector": "Remera"},
        {"id": "3", "province": "Eastern Province", "district": "Rwamagana"},
    ])
    rollup = GeographicRoller().roll(sample)
    for node in rollup.provinces:
        print(f"{node.name}: {node.count}")
