"""
Tests for the Area Relationship Graph.

Covers:
- Metadata completeness for every area
- Undirected critical relation
- Relationship scores and hop distances
- Risk-scan suggestion ordering, exclusion and minimum-result backfill
"""

import pytest

from assessment.interview.areas import (
    AREA_METADATA,
    CRITICAL_WEIGHT,
    DOWNSTREAM_WEIGHT,
    INDIRECT_WEIGHT,
    UPSTREAM_WEIGHT,
    AreaGraph,
    AreaRelationships,
)
from assessment.interview.models import Area


@pytest.fixture
def graph():
    return AreaGraph()


class TestMetadata:

    def test_every_area_described(self):
        assert set(AREA_METADATA) == set(Area)
        for meta in AREA_METADATA.values():
            assert meta.name
            assert meta.keywords
            assert meta.criticality > 0

    def test_graph_covers_all_areas(self, graph):
        assert graph.areas == tuple(Area)


class TestCriticalRelation:

    def test_declared_on_one_side_counts_for_both(self, graph):
        # Only finance declares sales as critical.
        assert graph.is_critical_relationship(Area.FINANCE, Area.SALES)
        assert graph.is_critical_relationship(Area.SALES, Area.FINANCE)

    def test_critical_areas_in_catalog_order(self, graph):
        assert graph.get_critical_areas(Area.SALES) == [
            Area.MARKETING, Area.OPERATIONS, Area.FINANCE,
        ]

    def test_technology_critical_neighbours(self, graph):
        assert graph.get_critical_areas(Area.TECHNOLOGY) == [
            Area.PRODUCT, Area.OPERATIONS,
        ]

    def test_self_loop_ignored(self):
        g = AreaGraph(relationships={
            Area.SALES: AreaRelationships(critical=(Area.SALES,)),
        })
        assert g.get_critical_areas(Area.SALES) == []


class TestScores:

    def test_same_area_scores_zero(self, graph):
        assert graph.calculate_relationship_score(Area.SALES, Area.SALES) == 0.0
        assert graph.calculate_area_distance(Area.SALES, Area.SALES) == 0

    def test_critical_beats_upstream(self, graph):
        assert graph.calculate_relationship_score(Area.TECHNOLOGY, Area.PRODUCT) == CRITICAL_WEIGHT
        assert graph.calculate_relationship_score(Area.TECHNOLOGY, Area.FINANCE) == UPSTREAM_WEIGHT
        assert graph.calculate_relationship_score(Area.TECHNOLOGY, Area.SALES) == DOWNSTREAM_WEIGHT

    def test_two_hops(self, graph):
        assert graph.calculate_area_distance(Area.TECHNOLOGY, Area.MARKETING) == 2
        assert graph.calculate_relationship_score(Area.TECHNOLOGY, Area.MARKETING) == INDIRECT_WEIGHT

    def test_unreachable_distance(self):
        g = AreaGraph(relationships={
            Area.SALES: AreaRelationships(),
            Area.FINANCE: AreaRelationships(),
        })
        assert g.calculate_area_distance(Area.SALES, Area.FINANCE) == len(g.areas)

    def test_ordered_by_criticality_excludes_self(self, graph):
        ordered = graph.get_areas_ordered_by_criticality(Area.TECHNOLOGY)
        assert Area.TECHNOLOGY not in [a for a, _ in ordered]
        assert ordered[0] == (Area.PRODUCT, CRITICAL_WEIGHT)


class TestSuggestRiskScanAreas:

    def test_technology_ranking(self, graph):
        assert graph.suggest_risk_scan_areas(Area.TECHNOLOGY) == [
            Area.PRODUCT,
            Area.OPERATIONS,
            Area.FINANCE,
            Area.PEOPLE,
            Area.SALES,
            Area.MARKETING,
        ]

    def test_never_returns_detected_area(self, graph):
        for area in Area:
            assert area not in graph.suggest_risk_scan_areas(area)

    def test_limit(self, graph):
        assert len(graph.suggest_risk_scan_areas(Area.SALES, limit=3)) == 3

    def test_exclusion(self, graph):
        result = graph.suggest_risk_scan_areas(
            Area.TECHNOLOGY, exclude_areas=[Area.PRODUCT]
        )
        assert Area.PRODUCT not in result
        assert result[0] == Area.OPERATIONS

    def test_exclusion_backfilled_below_minimum(self, graph):
        excluded = [Area.PRODUCT, Area.OPERATIONS, Area.FINANCE, Area.PEOPLE, Area.SALES]
        result = graph.suggest_risk_scan_areas(Area.TECHNOLOGY, exclude_areas=excluded)
        assert result[0] == Area.MARKETING
        assert len(result) == 3
        assert result[1:] == [Area.PRODUCT, Area.OPERATIONS]

    def test_deterministic(self, graph):
        assert graph.suggest_risk_scan_areas(Area.PEOPLE) == graph.suggest_risk_scan_areas(Area.PEOPLE)
