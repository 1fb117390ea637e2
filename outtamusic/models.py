"""Data classes shared across modules."""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

import numpy as np

from outtamusic.features import NUM_KEYS, NUM_TRACK_COLUMNS


# ---------------------------------------------------------------------------
# Feature Store (records)
# ---------------------------------------------------------------------------

def _empty_track_matrix() -> np.ndarray:
    return np.zeros((0, NUM_TRACK_COLUMNS), dtype=float)


@dataclass(eq=False)
class TrackTable:
    """Unique track IDs plus one numeric feature row per ID.

    Row ``i`` of ``features`` always describes ``ids[i]``.
    """

    ids: list[str] = field(default_factory=list)
    features: np.ndarray = field(default_factory=_empty_track_matrix)

    def __len__(self) -> int:
        return len(self.ids)


@dataclass
class AlbumFeatures:
    release_year: int
    album_type: str


@dataclass
class ArtistFeatures:
    """Artist metadata. ``genres`` holds indices into the store's GenreTable."""

    followers: int
    popularity: int
    genres: list[int] = field(default_factory=list)


@dataclass
class EntityTable:
    """Unique IDs plus one (possibly still empty) feature row per ID."""

    ids: list[str] = field(default_factory=list)
    rows: list[Any] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.ids)


@dataclass
class GenreTable:
    """Append-only interned genre strings."""

    names: list[str] = field(default_factory=list)
    _lookup: dict[str, int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._lookup = {name: i for i, name in enumerate(self.names)}

    def __len__(self) -> int:
        return len(self.names)

    def intern(self, name: str) -> int:
        """Return the index of *name*, appending it first if unseen."""
        idx = self._lookup.get(name)
        if idx is None:
            idx = len(self.names)
            self.names.append(name)
            self._lookup[name] = idx
        return idx

    def copy(self) -> GenreTable:
        return GenreTable(names=list(self.names))


class ReferenceTriple(NamedTuple):
    """One favourited track: row indices into the track/album/artist tables."""

    track: int
    album: int
    artists: Tuple[int, ...]


@dataclass
class MemberPlaylists:
    """A member's rank-ordered reference lists, keyed by calendar year."""

    member_id: str
    years: Dict[int, List[ReferenceTriple]] = field(default_factory=dict)


@dataclass(eq=False)
class FeatureStore:
    """Group-wide deduplicated tables plus every member's per-year references."""

    tracks: TrackTable = field(default_factory=TrackTable)
    albums: EntityTable = field(default_factory=EntityTable)
    artists: EntityTable = field(default_factory=EntityTable)
    genres: GenreTable = field(default_factory=GenreTable)
    members: list[MemberPlaylists] = field(default_factory=list)

    def member_index(self, member_id: str) -> Optional[int]:
        for i, m in enumerate(self.members):
            if m.member_id == member_id:
                return i
        return None

    def years(self) -> list[int]:
        """Sorted union of every year any member has a reference list for."""
        return sorted({y for m in self.members for y in m.years})

    def fingerprint(self) -> str:
        """Digest of the full store content: rows, genres and every reference in rank order."""
        content = {
            "tracks": self.tracks.ids,
            "albums": [self.albums.ids, [None if a is None else asdict(a) for a in self.albums.rows]],
            "artists": [self.artists.ids, [None if a is None else asdict(a) for a in self.artists.rows]],
            "genres": self.genres.names,
            "members": [
                [
                    m.member_id,
                    {
                        str(y): [[r.track, r.album, list(r.artists)] for r in refs]
                        for y, refs in sorted(m.years.items())
                    },
                ]
                for m in self.members
            ],
        }
        digest = hashlib.sha1(json.dumps(content, sort_keys=True).encode("utf-8"))
        features = np.ascontiguousarray(self.tracks.features, dtype=float)
        digest.update(str(features.shape).encode("utf-8"))
        digest.update(features.tobytes())
        return digest.hexdigest()


# ---------------------------------------------------------------------------
# Analysis snapshot
# ---------------------------------------------------------------------------

@dataclass
class DynamicClusters:
    """PCA coordinates and cluster ids, one entry per reference in rank order."""

    assignments: List[int] = field(default_factory=list)
    pca: List[List[float]] = field(default_factory=list)


@dataclass
class YearStats:
    """Descriptive statistics for one member's favourites in one year."""

    track_count: int = 0
    instrumental_ratio: float = 0.0
    live_ratio: float = 0.0
    major_ratio: float = 0.0
    average_popularity: float = 0.0
    key_counts: List[int] = field(default_factory=lambda: [0] * NUM_KEYS)
    album_counts: Dict[int, int] = field(default_factory=dict)
    artist_counts: Dict[int, int] = field(default_factory=dict)
    genre_counts: Dict[int, int] = field(default_factory=dict)
    weighted_genre_counts: Dict[int, float] = field(default_factory=dict)
    decade_counts: Dict[str, int] = field(default_factory=dict)
    weighted_decade_counts: Dict[str, float] = field(default_factory=dict)
    # [(track row index, popularity), ...], best first
    least_popular: List[Tuple[int, float]] = field(default_factory=list)
    most_popular: List[Tuple[int, float]] = field(default_factory=list)


@dataclass
class MemberYearAnalysis:
    member_id: str
    year: int
    static_clusters: Dict[str, List[int]] = field(default_factory=dict)
    dynamic_clusters: DynamicClusters = field(default_factory=DynamicClusters)
    stats: YearStats = field(default_factory=YearStats)


@dataclass
class AnalysisSnapshot:
    """Analysis grid addressed as ``cells[member_index][year_index]``."""

    years: List[int] = field(default_factory=list)
    members: List[str] = field(default_factory=list)
    cells: List[List[MemberYearAnalysis]] = field(default_factory=list)
    fingerprint: Optional[str] = None

    def cell(self, member_id: str, year: int) -> MemberYearAnalysis:
        return self.cells[self.members.index(member_id)][self.years.index(year)]
