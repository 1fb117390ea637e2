"""Per-member, per-year descriptive statistics over rank-ordered references."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Hashable, List, Sequence, Tuple

import pandas as pd

from outtamusic.features import (
    INSTRUMENTAL_THRESHOLD,
    LIVE_THRESHOLD,
    MAJOR_THRESHOLD,
    NUM_KEYS,
    RANK_WEIGHT_BASE,
    TOP_N,
    TRACK_COL,
    decade_label,
)
from outtamusic.models import FeatureStore, ReferenceTriple, YearStats

_POPULARITY = TRACK_COL["popularity"]
_INSTRUMENTALNESS = TRACK_COL["instrumentalness"]
_LIVENESS = TRACK_COL["liveness"]
_MODE = TRACK_COL["mode"]
_KEY = TRACK_COL["key"]


class TopFive:
    """Small sorted buffer of ``(track_index, popularity)``, best entry first.

    ``most=True`` keeps the most popular tracks, otherwise the least popular.
    Equal popularity is ordered by track index.
    """

    def __init__(self, most: bool, size: int = TOP_N):
        self.most = most
        self.size = size
        self.items: List[Tuple[int, float]] = []

    def _key(self, item: Tuple[int, float]) -> Tuple[float, int]:
        idx, pop = item
        return (-pop, idx) if self.most else (pop, idx)

    def offer(self, track_index: int, popularity: float) -> None:
        item = (track_index, popularity)
        if len(self.items) < self.size:
            self.items.append(item)
        elif self._key(item) < self._key(self.items[-1]):
            self.items[-1] = item
        else:
            return
        self.items.sort(key=self._key)


def top_counts(counts: Dict[Hashable, float], n: int = TOP_N) -> Dict[Hashable, float]:
    """Keep the *n* highest counts; ties go to the smaller key."""
    if not counts:
        return {}
    series = pd.Series(counts).sort_index().sort_values(ascending=False, kind="stable")
    return series.head(n).to_dict()


def rank_weight(position: int, list_length: int) -> int:
    """100 for the top-ranked track, one less per rank, never below 1."""
    return max(RANK_WEIGHT_BASE, list_length) - position


def compute_year_stats(store: FeatureStore, refs: Sequence[ReferenceTriple]) -> YearStats:
    """Aggregate one member's reference list for one year, in rank order."""
    n = len(refs)
    stats = YearStats(track_count=n)
    if n == 0:
        return stats

    features = store.tracks.features
    most, least = TopFive(most=True), TopFive(most=False)
    instrumental = live = major = 0
    popularity_total = 0.0
    key_counts = [0] * NUM_KEYS
    album_counts: Dict[int, int] = defaultdict(int)
    artist_counts: Dict[int, int] = defaultdict(int)
    genre_counts: Dict[int, int] = defaultdict(int)
    weighted_genres: Dict[int, float] = defaultdict(float)
    decade_counts: Dict[str, int] = defaultdict(int)
    weighted_decades: Dict[str, float] = defaultdict(float)

    for pos, ref in enumerate(refs):
        row = features[ref.track]
        weight = rank_weight(pos, n)

        if row[_INSTRUMENTALNESS] > INSTRUMENTAL_THRESHOLD:
            instrumental += 1
        if row[_LIVENESS] > LIVE_THRESHOLD:
            live += 1
        if row[_MODE] > MAJOR_THRESHOLD:
            major += 1
        key = int(row[_KEY])
        if 0 <= key < NUM_KEYS:
            key_counts[key] += 1

        popularity = float(row[_POPULARITY])
        popularity_total += popularity
        most.offer(ref.track, popularity)
        least.offer(ref.track, popularity)

        if ref.album >= 0:
            album_counts[ref.album] += 1
            album = store.albums.rows[ref.album]
            if album is not None and album.release_year > 0:
                label = decade_label(album.release_year)
                decade_counts[label] += 1
                weighted_decades[label] += weight

        track_genres: set[int] = set()
        for artist_idx in ref.artists:
            artist_counts[artist_idx] += 1
            artist = store.artists.rows[artist_idx]
            if artist is not None:
                track_genres.update(artist.genres)
        for g in sorted(track_genres):
            genre_counts[g] += 1
            weighted_genres[g] += weight

    stats.instrumental_ratio = instrumental / n
    stats.live_ratio = live / n
    stats.major_ratio = major / n
    stats.average_popularity = popularity_total / n
    stats.key_counts = key_counts
    stats.album_counts = top_counts(album_counts)
    stats.artist_counts = top_counts(artist_counts)
    stats.genre_counts = top_counts(genre_counts)
    stats.weighted_genre_counts = top_counts({g: w / n for g, w in weighted_genres.items()})
    stats.decade_counts = dict(decade_counts)
    stats.weighted_decade_counts = {d: w / n for d, w in weighted_decades.items()}
    stats.most_popular = list(most.items)
    stats.least_popular = list(least.items)
    return stats
