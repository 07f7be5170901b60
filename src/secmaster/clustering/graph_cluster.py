"""Canonical security graph using networkx connected components.

Builds an undirected graph whose nodes are all harmonized entities and
whose edges are APPROVED match decisions.  Each connected component is
one canonical security.  Components are checked for review flags: two
members from the same feed (transitive approval merged records a single
feed keeps apart), or conflicting ISINs.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

import networkx as nx

from secmaster.domain import HarmonizedEntity, MatchDecisionRecord, MatchStatus
from secmaster.matching.config import GraphConfig


@dataclass
class CanonicalComponent:
    """One canonical security.

    Attributes:
        canonical_id: ``SEC_<smallest member harmonized_id>``.
        members: Member entities, ordered by source rank then id.
        needs_review: Whether any review flag fired.
        review_reason: ``;``-joined flag names, or ``None``.
    """

    canonical_id: str
    members: list[HarmonizedEntity]
    needs_review: bool = False
    review_reason: str | None = None

    @property
    def representative(self) -> HarmonizedEntity:
        return self.members[0]

    @property
    def isin(self) -> str | None:
        return next((m.isin for m in self.members if m.isin), None)

    @property
    def sources(self) -> list[str]:
        return sorted({m.source.value for m in self.members})


@dataclass
class GraphResult:
    """Result of canonical graph construction.

    Attributes:
        components: Every component, singletons included, by canonical id.
        singleton_count: Components with one member.
        flagged_count: Components flagged for review.
    """

    components: list[CanonicalComponent] = field(default_factory=list)
    singleton_count: int = 0
    flagged_count: int = 0

    def canonical_ids(self) -> dict[str, str]:
        """``harmonized_id -> canonical_id`` lookup."""
        return {
            member.harmonized_id: component.canonical_id
            for component in self.components
            for member in component.members
        }


def build_canonical_graph(
    entities: Sequence[HarmonizedEntity],
    decisions: Sequence[MatchDecisionRecord],
    config: GraphConfig | None = None,
) -> GraphResult:
    """Group entities into canonical securities.

    Args:
        entities: All harmonized entities (ensures unmatched entities
            still become singleton securities).
        decisions: Match decisions; only APPROVED ones become edges.
        config: Review flag switches.

    Returns:
        A ``GraphResult`` ordered by canonical id.
    """
    if config is None:
        config = GraphConfig()

    G = nx.Graph()
    by_id = {e.harmonized_id: e for e in entities}
    G.add_nodes_from(by_id)

    for decision in decisions:
        if decision.status is not MatchStatus.APPROVED:
            continue
        if decision.harmonized_id_1 in by_id and decision.harmonized_id_2 in by_id:
            G.add_edge(
                decision.harmonized_id_1,
                decision.harmonized_id_2,
                weight=decision.similarity_score,
            )

    result = GraphResult()
    for component in nx.connected_components(G):
        members = sorted(
            (by_id[hid] for hid in component),
            key=lambda e: (e.source.rank, e.harmonized_id),
        )
        reasons = _review_reasons(members, config)
        result.components.append(
            CanonicalComponent(
                canonical_id=f"SEC_{min(component)}",
                members=members,
                needs_review=bool(reasons),
                review_reason="; ".join(reasons) or None,
            )
        )
        if len(members) == 1:
            result.singleton_count += 1
        if reasons:
            result.flagged_count += 1

    result.components.sort(key=lambda c: c.canonical_id)
    return result


def _review_reasons(members: list[HarmonizedEntity], config: GraphConfig) -> list[str]:
    reasons = []
    if config.flag_duplicate_sources:
        per_source = Counter(m.source for m in members)
        if any(n > 1 for n in per_source.values()):
            reasons.append("duplicate_source_members")
    if config.flag_conflicting_isin:
        isins = {m.isin.upper() for m in members if m.isin}
        if len(isins) > 1:
            reasons.append("conflicting_isin")
    return reasons
