"""In-memory stand-ins for the Spotify fetch capability."""

from __future__ import annotations

from typing import Optional

import numpy as np

from outtamusic.errors import ArtistFetchFailed
from outtamusic.features import NUM_TRACK_COLUMNS, TRACK_COL
from outtamusic.models import (
    AlbumFeatures,
    EntityTable,
    FeatureStore,
    MemberPlaylists,
    ReferenceTriple,
    TrackTable,
)


def make_track(tid, album_id, artist_ids, popularity=50, release_date="2015-03-01"):
    return {
        "id": tid,
        "name": f"Track {tid}",
        "popularity": popularity,
        "album": {"id": album_id, "release_date": release_date, "album_type": "album"},
        "artists": [{"id": a, "name": f"Artist {a}"} for a in artist_ids],
    }


def make_features(tid, **overrides):
    feats = {
        "id": tid,
        "duration_ms": 200000,
        "acousticness": 0.2,
        "danceability": 0.6,
        "energy": 0.7,
        "instrumentalness": 0.0,
        "loudness": -6.0,
        "mode": 1,
        "key": 5,
        "speechiness": 0.05,
        "liveness": 0.1,
        "tempo": 120.0,
        "valence": 0.5,
    }
    feats.update(overrides)
    return feats


def make_artist(aid, genres=(), followers=1000, popularity=60):
    return {
        "id": aid,
        "name": f"Artist {aid}",
        "genres": list(genres),
        "followers": {"total": followers},
        "popularity": popularity,
    }


class FakeFetcher:
    """Serves canned favourites for one member.

    ``playlists`` maps year → rank-ordered raw tracks. Features default to
    :func:`make_features` unless given in ``features`` (``None`` values are
    passed through like Spotify's nulls).
    """

    def __init__(
        self,
        playlists: dict[int, list[dict]],
        features: Optional[dict[str, Optional[dict]]] = None,
        artists: Optional[dict[str, dict]] = None,
        fail_artists: bool = False,
        short_features_year: Optional[int] = None,
    ):
        self.playlists = playlists
        self.features = features or {}
        self.artists = artists or {}
        self.fail_artists = fail_artists
        self.short_features_year = short_features_year
        self.artist_calls: list[list[str]] = []
        self._year_by_id: dict[str, int] = {}

    async def fetch_favorite_playlists(self, member_id: str) -> dict[int, dict]:
        out = {}
        for year in self.playlists:
            pid = f"{member_id}-{year}"
            self._year_by_id[pid] = year
            out[year] = {"id": pid, "name": f"Your Top Songs {year}"}
        return out

    async def fetch_tracks(self, playlist: dict) -> list[dict]:
        return list(self.playlists[self._year_by_id[playlist["id"]]])

    async def fetch_audio_features(self, track_ids: list[str]) -> dict:
        feats = [
            self.features[tid] if tid in self.features else make_features(tid)
            for tid in track_ids
        ]
        year = next(
            (y for y, tracks in self.playlists.items() if [t["id"] for t in tracks] == track_ids),
            None,
        )
        if year is not None and year == self.short_features_year:
            feats = feats[:-1]
        return {"audio_features": feats}

    async def fetch_artists(self, artist_ids: list[str], batch_size: int = 50) -> list[dict]:
        self.artist_calls.append(list(artist_ids))
        if self.fail_artists:
            raise ArtistFetchFailed(artist_ids, "boom")
        return [self.artists.get(aid, make_artist(aid)) for aid in artist_ids]


def make_store(lengths_by_year: dict[int, list[int]], seed: int = 0) -> FeatureStore:
    """A store with random track features.

    ``lengths_by_year[year][m]`` is member ``m``'s reference count that year;
    every reference points at its own track row.
    """
    rng = np.random.default_rng(seed)
    n_members = max(len(v) for v in lengths_by_year.values())
    total = sum(sum(v) for v in lengths_by_year.values())

    features = rng.random((total, NUM_TRACK_COLUMNS))
    features[:, TRACK_COL["tempo"]] = rng.uniform(60, 180, total)
    features[:, TRACK_COL["key"]] = rng.integers(0, 12, total)

    members = [MemberPlaylists(member_id=f"m{i}") for i in range(n_members)]
    row = 0
    for year, lengths in sorted(lengths_by_year.items()):
        for m, n in enumerate(lengths):
            refs = []
            for _ in range(n):
                refs.append(ReferenceTriple(track=row, album=0, artists=()))
                row += 1
            members[m].years[year] = refs

    return FeatureStore(
        tracks=TrackTable(ids=[f"t{i}" for i in range(total)], features=features),
        albums=EntityTable(ids=["al0"], rows=[AlbumFeatures(release_year=2001, album_type="album")]),
        members=members,
    )
