"""Plain nested-dict layout for persisting the Feature Store and analysis.

Feature rows are stored as arrays rather than labelled objects to keep the
persisted documents small; column meaning is fixed by :mod:`outtamusic.features`.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Optional

import numpy as np

from outtamusic.features import NUM_TRACK_COLUMNS
from outtamusic.models import (
    AlbumFeatures,
    AnalysisSnapshot,
    ArtistFeatures,
    DynamicClusters,
    EntityTable,
    FeatureStore,
    GenreTable,
    MemberPlaylists,
    MemberYearAnalysis,
    ReferenceTriple,
    TrackTable,
    YearStats,
)


# ---------------------------------------------------------------------------
# Feature Store
# ---------------------------------------------------------------------------

def _album_to_list(a: Optional[AlbumFeatures]) -> Optional[list]:
    return None if a is None else [a.release_year, a.album_type]


def _album_from_list(row: Optional[list]) -> Optional[AlbumFeatures]:
    if row is None:
        return None
    return AlbumFeatures(release_year=int(row[0]), album_type=row[1])


def _artist_to_list(a: Optional[ArtistFeatures]) -> Optional[list]:
    return None if a is None else [a.followers, a.popularity, list(a.genres)]


def _artist_from_list(row: Optional[list]) -> Optional[ArtistFeatures]:
    if row is None:
        return None
    return ArtistFeatures(followers=int(row[0]), popularity=int(row[1]), genres=[int(g) for g in row[2]])


def store_to_dict(store: FeatureStore) -> dict[str, Any]:
    """Convert a :class:`FeatureStore` to a JSON-safe dict."""
    return {
        "tracks": {
            "ids": list(store.tracks.ids),
            "features": store.tracks.features.tolist(),
        },
        "albums": {
            "ids": list(store.albums.ids),
            "features": [_album_to_list(a) for a in store.albums.rows],
        },
        "artists": {
            "ids": list(store.artists.ids),
            "features": [_artist_to_list(a) for a in store.artists.rows],
        },
        "genres": list(store.genres.names),
        "playlists": [
            {
                "member_id": m.member_id,
                "years": {
                    str(year): [[r.track, r.album, list(r.artists)] for r in refs]
                    for year, refs in sorted(m.years.items())
                },
            }
            for m in store.members
        ],
    }


def store_from_dict(d: Optional[dict]) -> FeatureStore:
    """Inverse of :func:`store_to_dict`; ``None`` or ``{}`` gives an empty store."""
    if not d:
        return FeatureStore()

    tracks = d.get("tracks", {})
    albums = d.get("albums", {})
    artists = d.get("artists", {})
    features = np.asarray(tracks.get("features", []), dtype=float).reshape(-1, NUM_TRACK_COLUMNS)

    return FeatureStore(
        tracks=TrackTable(ids=list(tracks.get("ids", [])), features=features),
        albums=EntityTable(
            ids=list(albums.get("ids", [])),
            rows=[_album_from_list(r) for r in albums.get("features", [])],
        ),
        artists=EntityTable(
            ids=list(artists.get("ids", [])),
            rows=[_artist_from_list(r) for r in artists.get("features", [])],
        ),
        genres=GenreTable(names=list(d.get("genres", []))),
        members=[
            MemberPlaylists(
                member_id=p["member_id"],
                years={
                    int(year): [ReferenceTriple(int(t), int(a), tuple(int(x) for x in ar)) for t, a, ar in refs]
                    for year, refs in p.get("years", {}).items()
                },
            )
            for p in d.get("playlists", [])
        ],
    )


# ---------------------------------------------------------------------------
# Analysis snapshot
# ---------------------------------------------------------------------------

def _int_keys(d: dict) -> dict:
    return {int(k): v for k, v in d.items()}


def _stats_from_dict(d: dict) -> YearStats:
    return YearStats(
        track_count=d.get("track_count", 0),
        instrumental_ratio=d.get("instrumental_ratio", 0.0),
        live_ratio=d.get("live_ratio", 0.0),
        major_ratio=d.get("major_ratio", 0.0),
        average_popularity=d.get("average_popularity", 0.0),
        key_counts=list(d.get("key_counts", [])) or YearStats().key_counts,
        album_counts=_int_keys(d.get("album_counts", {})),
        artist_counts=_int_keys(d.get("artist_counts", {})),
        genre_counts=_int_keys(d.get("genre_counts", {})),
        weighted_genre_counts=_int_keys(d.get("weighted_genre_counts", {})),
        decade_counts=dict(d.get("decade_counts", {})),
        weighted_decade_counts=dict(d.get("weighted_decade_counts", {})),
        least_popular=[(int(i), float(p)) for i, p in d.get("least_popular", [])],
        most_popular=[(int(i), float(p)) for i, p in d.get("most_popular", [])],
    )


def _cell_to_dict(c: MemberYearAnalysis) -> dict:
    return {
        "member_id": c.member_id,
        "year": c.year,
        "static_clusters": {k: list(v) for k, v in c.static_clusters.items()},
        "dynamic_clusters": {
            "assignments": list(c.dynamic_clusters.assignments),
            "pca": [list(p) for p in c.dynamic_clusters.pca],
        },
        "stats": asdict(c.stats),
    }


def _cell_from_dict(d: dict) -> MemberYearAnalysis:
    dyn = d.get("dynamic_clusters", {})
    return MemberYearAnalysis(
        member_id=d["member_id"],
        year=int(d["year"]),
        static_clusters={k: list(v) for k, v in d.get("static_clusters", {}).items()},
        dynamic_clusters=DynamicClusters(
            assignments=list(dyn.get("assignments", [])),
            pca=[list(p) for p in dyn.get("pca", [])],
        ),
        stats=_stats_from_dict(d.get("stats", {})),
    )


def analysis_to_dict(a: AnalysisSnapshot) -> dict[str, Any]:
    """Convert an :class:`AnalysisSnapshot` to a JSON-safe dict."""
    return {
        "years": list(a.years),
        "members": list(a.members),
        "fingerprint": a.fingerprint,
        "data": [[_cell_to_dict(c) for c in row] for row in a.cells],
    }


def analysis_from_dict(d: Optional[dict]) -> Optional[AnalysisSnapshot]:
    """Inverse of :func:`analysis_to_dict`; ``None`` when nothing was persisted."""
    if not d:
        return None
    return AnalysisSnapshot(
        years=[int(y) for y in d.get("years", [])],
        members=list(d.get("members", [])),
        cells=[[_cell_from_dict(c) for c in row] for row in d.get("data", [])],
        fingerprint=d.get("fingerprint"),
    )
