"""
Area metadata and the Area Relationship Graph.

The graph is static: which business areas feed which (upstream), which
they feed (downstream), and which pairs are critically coupled. It is
used to rank candidate risk-scan areas so that the scan surfaces the
areas whose failure would most directly undermine the respondent's area
of strength.

Edges:
- upstream / downstream: directed, declared per area
- critical: undirected, a pair declared critical on either side counts
  for both endpoints

Usage:
    graph = AreaGraph()
    graph.suggest_risk_scan_areas(Area.TECHNOLOGY)
    # -> [Area.PRODUCT, Area.OPERATIONS, Area.FINANCE, ...]
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Optional

from assessment.interview.models import Area

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AreaMetadata:
    """
    Static description of an area.

    Attributes:
        name: Display name.
        icon: Emoji used by the report layer.
        description: One-line summary.
        key_metrics: Metrics a diagnostic should report for this area.
        criticality: Business criticality weight (higher = more central).
            Used as the risk-scan tiebreak and as the health-score weight
            in the overall diagnostic score.
        keywords: Terms that point to this area in free text.
    """
    name: str
    icon: str
    description: str
    key_metrics: tuple[str, ...] = ()
    criticality: float = 1.0
    keywords: tuple[str, ...] = ()


AREA_METADATA: dict[Area, AreaMetadata] = {
    Area.MARKETING: AreaMetadata(
        name="Marketing & Growth",
        icon="📈",
        description="Customer acquisition, brand, funnel and activation",
        key_metrics=("CAC", "LTV", "Conversion Rate", "Channel Mix"),
        criticality=1.0,
        keywords=(
            "marketing", "cac", "funnel", "leads", "campaign", "brand",
            "seo", "ads", "acquisition", "growth", "conversion", "traffic",
        ),
    ),
    Area.SALES: AreaMetadata(
        name="Sales & Commercial",
        icon="💼",
        description="Pipeline, closing, pricing and retention",
        key_metrics=("Sales Cycle", "Win Rate", "Average Ticket", "Churn"),
        criticality=1.3,
        keywords=(
            "sales", "pipeline", "deal", "close", "closing", "crm", "quota",
            "churn", "ticket", "prospect", "win rate", "revenue", "customers",
        ),
    ),
    Area.PRODUCT: AreaMetadata(
        name="Product",
        icon="🧩",
        description="Product-market fit, roadmap and delivery speed",
        key_metrics=("Time to Ship", "Release Cadence", "PMF Stage", "Feedback Loop"),
        criticality=1.2,
        keywords=(
            "product", "feature", "roadmap", "users", "pmf", "product-market",
            "feedback", "ux", "release", "backlog", "onboarding",
        ),
    ),
    Area.OPERATIONS: AreaMetadata(
        name="Operations & Logistics",
        icon="⚙️",
        description="Fulfillment, process maturity and automation",
        key_metrics=("Fulfillment Time", "Error Rate", "Process Docs", "Automation"),
        criticality=1.0,
        keywords=(
            "operations", "process", "fulfillment", "delivery", "logistics",
            "supply", "manual", "automation", "bottleneck", "sla",
        ),
    ),
    Area.FINANCE: AreaMetadata(
        name="Financial",
        icon="💰",
        description="Runway, burn, margins and planning",
        key_metrics=("Runway", "Burn Rate", "Profit Margin", "Revenue Growth"),
        criticality=1.4,
        keywords=(
            "cash", "runway", "burn", "margin", "profit", "budget", "cost",
            "financial", "finance", "investors", "fundraising", "pricing",
        ),
    ),
    Area.PEOPLE: AreaMetadata(
        name="People & Culture",
        icon="👥",
        description="Hiring, retention, onboarding and culture",
        key_metrics=("Team Growth", "Turnover", "Ramp-up Time", "Culture Clarity"),
        criticality=0.9,
        keywords=(
            "team", "hiring", "hire", "talent", "turnover", "culture",
            "people", "leadership", "morale", "retention", "recruiting",
        ),
    ),
    Area.TECHNOLOGY: AreaMetadata(
        name="Technology & Data",
        icon="🖥️",
        description="Engineering practices, reliability and data",
        key_metrics=("CI/CD", "Test Coverage", "Incident Frequency", "Tech Debt"),
        criticality=1.1,
        keywords=(
            "tech", "technology", "code", "deploy", "bug", "bugs", "incident",
            "infrastructure", "tech debt", "legacy", "data", "engineering",
            "ci/cd", "downtime", "architecture",
        ),
    ),
}


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AreaRelationships:
    upstream: tuple[Area, ...] = ()
    downstream: tuple[Area, ...] = ()
    critical: tuple[Area, ...] = ()


AREA_RELATIONSHIPS: dict[Area, AreaRelationships] = {
    Area.MARKETING: AreaRelationships(
        upstream=(Area.PRODUCT, Area.FINANCE),
        downstream=(Area.SALES, Area.PRODUCT),
        critical=(Area.SALES,),
    ),
    Area.SALES: AreaRelationships(
        upstream=(Area.MARKETING, Area.PRODUCT, Area.OPERATIONS),
        downstream=(Area.FINANCE, Area.PRODUCT),
        critical=(Area.MARKETING, Area.OPERATIONS),
    ),
    Area.PRODUCT: AreaRelationships(
        upstream=(Area.TECHNOLOGY, Area.PEOPLE),
        downstream=(Area.MARKETING, Area.SALES, Area.OPERATIONS),
        critical=(Area.TECHNOLOGY,),
    ),
    Area.OPERATIONS: AreaRelationships(
        upstream=(Area.PRODUCT, Area.TECHNOLOGY, Area.PEOPLE),
        downstream=(Area.SALES, Area.FINANCE),
        critical=(Area.SALES, Area.TECHNOLOGY),
    ),
    Area.FINANCE: AreaRelationships(
        upstream=(Area.SALES, Area.OPERATIONS, Area.PEOPLE),
        downstream=(Area.MARKETING, Area.PEOPLE, Area.TECHNOLOGY),
        critical=(Area.SALES,),
    ),
    Area.PEOPLE: AreaRelationships(
        upstream=(Area.FINANCE,),
        downstream=(Area.PRODUCT, Area.OPERATIONS, Area.TECHNOLOGY, Area.SALES),
        critical=(Area.FINANCE, Area.PRODUCT),
    ),
    Area.TECHNOLOGY: AreaRelationships(
        upstream=(Area.PEOPLE, Area.FINANCE),
        downstream=(Area.PRODUCT, Area.OPERATIONS, Area.SALES),
        critical=(Area.PRODUCT, Area.OPERATIONS),
    ),
}

# Relationship scores (feature for risk-area ranking)
CRITICAL_WEIGHT = 1.0
UPSTREAM_WEIGHT = 0.7
DOWNSTREAM_WEIGHT = 0.6
INDIRECT_WEIGHT = 0.3
UNRELATED_WEIGHT = 0.1


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------

@dataclass
class AreaGraph:
    """
    Read-only view over the area relationships.

    Constructed once at startup. Pass custom `relationships` /
    `metadata` to test against a different fixture.
    """

    relationships: dict[Area, AreaRelationships] = field(
        default_factory=lambda: dict(AREA_RELATIONSHIPS)
    )
    metadata: dict[Area, AreaMetadata] = field(
        default_factory=lambda: dict(AREA_METADATA)
    )

    def __post_init__(self) -> None:
        self._areas: tuple[Area, ...] = tuple(
            a for a in Area if a in self.relationships
        )
        # Critical relation is undirected: fold both declarations together.
        critical: dict[Area, set[Area]] = {a: set() for a in self._areas}
        for area, rel in self.relationships.items():
            for other in rel.critical:
                if other == area:
                    continue
                critical[area].add(other)
                critical.setdefault(other, set()).add(area)
        self._critical = critical

    @property
    def areas(self) -> tuple[Area, ...]:
        return self._areas

    # ── Neighbours ───────────────────────────────────────────────

    def get_upstream_areas(self, area: Area) -> list[Area]:
        return list(self.relationships[area].upstream)

    def get_downstream_areas(self, area: Area) -> list[Area]:
        return list(self.relationships[area].downstream)

    def get_critical_areas(self, area: Area) -> list[Area]:
        """Critical neighbours in catalog order (both edge directions)."""
        return [a for a in self._areas if a in self._critical.get(area, set())]

    def is_critical_relationship(self, a: Area, b: Area) -> bool:
        return b in self._critical.get(a, set())

    def neighbours(self, area: Area) -> set[Area]:
        """Every area one hop away over any relation."""
        rel = self.relationships[area]
        return (
            set(rel.upstream) | set(rel.downstream) | self._critical.get(area, set())
        ) - {area}

    # ── Scoring ──────────────────────────────────────────────────

    def calculate_relationship_score(self, a: Area, b: Area) -> float:
        """
        Proximity of `b` to `a`.

        critical (1.0) > upstream (0.7) > downstream (0.6)
        > two hops (0.3) > unrelated (0.1). Same area scores 0.
        """
        if a == b:
            return 0.0
        if self.is_critical_relationship(a, b):
            return CRITICAL_WEIGHT
        if b in self.relationships[a].upstream:
            return UPSTREAM_WEIGHT
        if b in self.relationships[a].downstream:
            return DOWNSTREAM_WEIGHT
        if self.calculate_area_distance(a, b) == 2:
            return INDIRECT_WEIGHT
        return UNRELATED_WEIGHT

    def calculate_area_distance(self, a: Area, b: Area) -> int:
        """
        Hop count between two areas over all relations.

        Unreachable pairs get len(areas), which ranks them last without
        excluding them.
        """
        if a == b:
            return 0
        seen = {a}
        queue: deque[tuple[Area, int]] = deque([(a, 0)])
        while queue:
            current, dist = queue.popleft()
            for nxt in sorted(self.neighbours(current), key=self._areas.index):
                if nxt == b:
                    return dist + 1
                if nxt not in seen:
                    seen.add(nxt)
                    queue.append((nxt, dist + 1))
        return len(self._areas)

    def criticality(self, area: Area) -> float:
        meta = self.metadata.get(area)
        return meta.criticality if meta else 1.0

    def get_areas_ordered_by_criticality(self, area: Area) -> list[tuple[Area, float]]:
        """Every other area with its relationship score, strongest first."""
        scored = [
            (other, self.calculate_relationship_score(area, other))
            for other in self._areas
            if other != area
        ]
        return sorted(
            scored,
            key=lambda pair: (-pair[1], -self.criticality(pair[0]), self._areas.index(pair[0])),
        )

    # ── Risk-scan suggestion ─────────────────────────────────────

    def suggest_risk_scan_areas(
        self,
        detected_area: Area,
        exclude_areas: Iterable[Area] = (),
        limit: Optional[int] = None,
        min_results: int = 3,
    ) -> list[Area]:
        """
        Rank candidate risk-scan areas for a respondent strong in `detected_area`.

        Ordering: relationship score to `detected_area` (desc), then hop
        distance (asc), then area criticality (desc), then catalog order.
        `detected_area` is never returned. Excluded areas are dropped,
        unless dropping them would leave fewer than `min_results`
        candidates, in which case they are appended back at the end.
        """
        excluded = set(exclude_areas) - {detected_area}

        def rank(other: Area) -> tuple[float, int, float, int]:
            return (
                -self.calculate_relationship_score(detected_area, other),
                self.calculate_area_distance(detected_area, other),
                -self.criticality(other),
                self._areas.index(other),
            )

        ordered = sorted(
            (a for a in self._areas if a != detected_area),
            key=rank,
        )
        result = [a for a in ordered if a not in excluded]
        if len(result) < min_results:
            result += [a for a in ordered if a in excluded][: min_results - len(result)]

        if limit is not None:
            result = result[:limit]

        logger.debug(
            "risk_areas_suggested",
            extra={
                "detected_area": detected_area.value,
                "suggested": [a.value for a in result],
            },
        )
        return result
