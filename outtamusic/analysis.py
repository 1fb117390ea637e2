"""Group analysis – clustering and statistics for every (member, year) pair.

Public API
----------
recompute(store, prior, group_members) → AnalysisSnapshot

The snapshot is always rebuilt from the complete Feature Store: clusters are
computed over everybody's pooled tracks, so patching a single member in would
make their assignments incomparable with the rest of the group.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from outtamusic.clustering import cluster_count, cluster_year
from outtamusic.errors import ClusteringInputEmpty
from outtamusic.features import STATIC_PAIRS
from outtamusic.models import (
    AnalysisSnapshot,
    DynamicClusters,
    FeatureStore,
    MemberYearAnalysis,
)
from outtamusic.stats import compute_year_stats

logger = logging.getLogger(__name__)


def _empty_cell(member_id: str, year: int) -> MemberYearAnalysis:
    return MemberYearAnalysis(
        member_id=member_id,
        year=year,
        static_clusters={name: [] for name, _, _ in STATIC_PAIRS},
    )


def snapshot_fingerprint(store: FeatureStore, k: int) -> str:
    """Identifies the inputs a snapshot was computed from."""
    return f"{store.fingerprint()}:k={k}"


def recompute(
    store: FeatureStore,
    prior: Optional[AnalysisSnapshot] = None,
    group_members: Optional[Sequence[str]] = None,
) -> AnalysisSnapshot:
    """Build the analysis grid ``[member][year]`` for the whole store.

    *prior* is returned unchanged when it was computed from an identical
    store with the same cluster count. *group_members* sizes the clustering
    (``k = len + extra``); it defaults to the members present in the store.

    A year without any tracks keeps empty cluster arrays; the other years
    are unaffected.
    """
    members = [m.member_id for m in store.members]
    k = cluster_count(len(group_members) if group_members else len(members))

    fingerprint = snapshot_fingerprint(store, k)
    if prior is not None and prior.fingerprint == fingerprint:
        logger.info("[analysis] Feature Store and k unchanged, reusing prior snapshot")
        return prior

    years = store.years()

    if group_members:
        missing = [m for m in group_members if m not in members]
        if missing:
            logger.info(f"[analysis] {len(missing)} group member(s) have no records yet")

    logger.info(
        f"[analysis] {len(members)} member(s), {len(years)} year(s)"
        + (f" ({years[0]}-{years[-1]})" if years else "")
        + f", k={k}"
    )

    cells: List[List[MemberYearAnalysis]] = [
        [_empty_cell(member_id, y) for y in years] for member_id in members
    ]

    for yi, year in enumerate(years):
        try:
            clusters = cluster_year(store, year, k)
        except ClusteringInputEmpty as e:
            logger.warning(f"[analysis] {e}; leaving {year} unclustered")
        else:
            for mi in range(len(members)):
                cell = cells[mi][yi]
                for name, per_member in clusters.static.items():
                    cell.static_clusters[name] = per_member[mi]
                cell.dynamic_clusters = DynamicClusters(
                    assignments=clusters.dynamic_assignments[mi],
                    pca=clusters.dynamic_pca[mi],
                )

        for mi, member in enumerate(store.members):
            cells[mi][yi].stats = compute_year_stats(store, member.years.get(year, []))

    return AnalysisSnapshot(years=years, members=members, cells=cells, fingerprint=fingerprint)
