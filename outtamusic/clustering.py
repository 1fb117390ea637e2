"""Pooled per-year clustering of track references.

For a given year every member's reference list is concatenated (members in
store order, each list in rank order) into one *pool*. Clustering runs on the
pool; results are scattered back to ``(member_index, relative_index)`` through
an offset table built from the very same per-member lengths that produced the
pool.

Public API
----------
pool_year(store, year)             → (pooled refs, per-member lengths)
build_offsets(lengths) / locate()  → pooled index ↔ (member, relative index)
k_medoids(X, k)                    → labels in [0, k)
cluster_year(store, year, k)       → YearClusters
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
from sklearn.decomposition import PCA
from sklearn.metrics import pairwise_distances
from sklearn.preprocessing import MinMaxScaler

from outtamusic import config
from outtamusic.errors import ClusteringInputEmpty
from outtamusic.features import DYNAMIC_COL_INDICES, STATIC_PAIR_COLS
from outtamusic.models import FeatureStore, ReferenceTriple

logger = logging.getLogger(__name__)


def cluster_count(member_count: int) -> int:
    """Members plus a fixed number of extra clusters for finer sub-groupings."""
    return member_count + config.EXTRA_CLUSTERS


# ═══════════════════════════════════════════════════════════════════════════
# Pooling & offsets
# ═══════════════════════════════════════════════════════════════════════════

def pool_year(store: FeatureStore, year: int) -> Tuple[List[ReferenceTriple], List[int]]:
    """All members' references for *year*, concatenated, plus each member's length."""
    pooled: List[ReferenceTriple] = []
    lengths: List[int] = []
    for member in store.members:
        refs = member.years.get(year, [])
        pooled.extend(refs)
        lengths.append(len(refs))
    return pooled, lengths


def build_offsets(lengths: Sequence[int]) -> List[int]:
    """Start offset of every member's block, followed by the pool size."""
    offsets = [0]
    for n in lengths:
        offsets.append(offsets[-1] + n)
    return offsets


def locate(offsets: Sequence[int], pooled_index: int) -> Tuple[int, int]:
    """Map a pooled index to ``(member_index, relative_index)``."""
    if not 0 <= pooled_index < offsets[-1]:
        raise IndexError(f"pooled index {pooled_index} outside pool of {offsets[-1]}")
    # Empty members share their successor's start; bisect_right skips past them.
    member = bisect_right(offsets, pooled_index) - 1
    return member, pooled_index - offsets[member]


def scatter(values: Sequence[Any], lengths: Sequence[int]) -> List[List[Any]]:
    """Split pooled *values* back into one list per member."""
    offsets = build_offsets(lengths)
    if len(values) != offsets[-1]:
        raise ValueError(f"{len(values)} values for a pool of {offsets[-1]}")
    out: List[List[Any]] = [[None] * n for n in lengths]
    for i, v in enumerate(values):
        member, rel = locate(offsets, i)
        out[member][rel] = v
    return out


# ═══════════════════════════════════════════════════════════════════════════
# k-medoids
# ═══════════════════════════════════════════════════════════════════════════

def _build_medoids(D: np.ndarray, k: int) -> np.ndarray:
    """Greedy PAM BUILD: start at the most central point, then add the point
    that lowers total distance the most. Ties go to the lowest index."""
    first = int(np.argmin(D.sum(axis=1)))
    medoids = [first]
    nearest = D[:, first].copy()
    for _ in range(1, k):
        gain = np.maximum(nearest[:, None] - D, 0.0).sum(axis=0)
        gain[medoids] = -1.0
        j = int(np.argmax(gain))
        medoids.append(j)
        nearest = np.minimum(nearest, D[:, j])
    return np.array(medoids, dtype=int)


def k_medoids(X: np.ndarray, k: int, max_iter: int = 100) -> np.ndarray:
    """Partition the rows of *X* into *k* clusters around medoids.

    Deterministic: BUILD initialisation followed by alternating assignment /
    medoid update. When there are no more points than clusters, every point
    gets its own cluster.
    """
    X = np.asarray(X, dtype=float)
    n = X.shape[0]
    if n == 0:
        return np.zeros(0, dtype=int)
    if n <= k:
        return np.arange(n, dtype=int)

    D = pairwise_distances(X)
    medoids = _build_medoids(D, k)
    labels = np.argmin(D[:, medoids], axis=1)

    for _ in range(max_iter):
        updated = medoids.copy()
        for c in range(k):
            members = np.flatnonzero(labels == c)
            if len(members) == 0:
                continue
            costs = D[np.ix_(members, members)].sum(axis=1)
            updated[c] = members[int(np.argmin(costs))]
        if np.array_equal(updated, medoids):
            break
        medoids = updated
        labels = np.argmin(D[:, medoids], axis=1)

    return labels.astype(int)


# ═══════════════════════════════════════════════════════════════════════════
# Static + dynamic passes
# ═══════════════════════════════════════════════════════════════════════════

def _project(X: np.ndarray) -> np.ndarray:
    """First two principal components; zeros when there is no variance."""
    n = X.shape[0]
    coords = np.zeros((n, 2), dtype=float)
    if n < 2 or np.allclose(X, X[0]):
        return coords
    n_comp = min(2, n, X.shape[1])
    coords[:, :n_comp] = PCA(n_components=n_comp).fit_transform(X)
    return coords


@dataclass
class YearClusters:
    """Cluster results for one year, already split per member."""

    year: int
    k: int
    static: Dict[str, List[List[int]]] = field(default_factory=dict)
    dynamic_assignments: List[List[int]] = field(default_factory=list)
    dynamic_pca: List[List[List[float]]] = field(default_factory=list)


def cluster_year(store: FeatureStore, year: int, k: int) -> YearClusters:
    """Static feature-pair and dynamic PCA clustering over the pooled year.

    Raises :class:`ClusteringInputEmpty` when nobody has tracks that year.
    """
    pooled, lengths = pool_year(store, year)
    if not pooled:
        raise ClusteringInputEmpty(year)

    rows = store.tracks.features[[ref.track for ref in pooled]]
    result = YearClusters(year=year, k=k)

    for name, (x_col, y_col) in STATIC_PAIR_COLS.items():
        labels = k_medoids(rows[:, [x_col, y_col]], k)
        result.static[name] = scatter(labels.tolist(), lengths)

    # Normalise over the whole pool, not per member
    scaled = MinMaxScaler().fit_transform(rows[:, DYNAMIC_COL_INDICES])
    coords = _project(scaled)
    labels = k_medoids(coords, k)
    result.dynamic_assignments = scatter(labels.tolist(), lengths)
    result.dynamic_pca = scatter(coords.tolist(), lengths)

    logger.info(f"[cluster] {year}: {len(pooled)} pooled track(s), k={k}")
    return result
