"""Feature Store ingestion – merges one member's favourites into the group tables.

Public entry point: :func:`ingest_member`.

The input store is never modified. A new :class:`FeatureStore` is built and
returned only once every fetch has succeeded, so an aborted ingestion leaves
nothing half-merged.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional, Protocol

import numpy as np

from outtamusic import config
from outtamusic.errors import ArtistFetchFailed, FeatureCountMismatch, NoPlaylistsFound
from outtamusic.features import (
    AUDIO_FEATURE_COLS,
    NO_KEY,
    NUM_TRACK_COLUMNS,
    TRACK_COL,
    TRACK_LEVEL_COLS,
)
from outtamusic.models import (
    AlbumFeatures,
    ArtistFeatures,
    EntityTable,
    FeatureStore,
    GenreTable,
    MemberPlaylists,
    ReferenceTriple,
    TrackTable,
)

logger = logging.getLogger(__name__)


class FetchCapabilities(Protocol):
    """What ingestion needs from the outside world for one member."""

    async def fetch_favorite_playlists(self, member_id: str) -> dict[int, dict]: ...

    async def fetch_tracks(self, playlist: dict) -> list[dict]: ...

    async def fetch_audio_features(self, track_ids: list[str]) -> dict: ...

    async def fetch_artists(self, artist_ids: list[str], batch_size: int = ...) -> list[dict]: ...


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------

def _num(x, default: float = 0.0) -> float:
    if x is None:
        return default
    return float(x)


def _track_row(track: dict, features: Optional[dict]) -> np.ndarray:
    """One track-table row from a /tracks object and its /audio-features object."""
    row = np.zeros(NUM_TRACK_COLUMNS, dtype=float)
    for col in TRACK_LEVEL_COLS:
        row[TRACK_COL[col]] = _num(track.get(col))
    if features is None:
        row[TRACK_COL["key"]] = NO_KEY
        return row
    for col in AUDIO_FEATURE_COLS:
        row[TRACK_COL[col]] = _num(features.get(col), NO_KEY if col == "key" else 0.0)
    return row


def _release_year(album: dict) -> int:
    """Year part of ``release_date`` ("1999", "1999-05" or "1999-05-01"); 0 if unknown."""
    date = album.get("release_date") or ""
    head = date.split("-", 1)[0]
    return int(head) if head.isdigit() else 0


def _album_row(album: dict) -> AlbumFeatures:
    return AlbumFeatures(
        release_year=_release_year(album),
        album_type=album.get("album_type") or "",
    )


def _artist_row(artist: dict, genres: GenreTable) -> ArtistFeatures:
    return ArtistFeatures(
        followers=int((artist.get("followers") or {}).get("total") or 0),
        popularity=int(artist.get("popularity") or 0),
        genres=[genres.intern(g) for g in artist.get("genres", [])],
    )


def _album_id(track: dict) -> Optional[str]:
    return (track.get("album") or {}).get("id")


def _artist_ids(track: dict) -> list[str]:
    return [a["id"] for a in track.get("artists", []) if a.get("id")]


def _extend_ids(existing: list[str], seen: Iterable[Optional[str]]) -> list[str]:
    """Existing IDs first (row indices stay put), then unseen IDs in first-seen order."""
    ids = list(existing)
    known = set(ids)
    for x in seen:
        if x is not None and x not in known:
            known.add(x)
            ids.append(x)
    return ids


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

async def _fetch_year(
    fetcher: FetchCapabilities,
    year: int,
    playlist: dict,
) -> tuple[list[dict], list[Optional[dict]]]:
    """Tracks of one favourites playlist plus their audio features, aligned."""
    tracks = await fetcher.fetch_tracks(playlist)
    if not tracks:
        return [], []

    data = await fetcher.fetch_audio_features([t["id"] for t in tracks])
    features = (data or {}).get("audio_features")
    if features is None or len(features) != len(tracks):
        raise FeatureCountMismatch(year, len(tracks), 0 if features is None else len(features))

    logger.info(f"[ingest] {year}: {len(tracks)} track(s)")
    return tracks, features


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

async def ingest_member(
    store: FeatureStore,
    member_id: str,
    fetcher: FetchCapabilities,
    years: Optional[list[int]] = None,
) -> FeatureStore:
    """Merge *member_id*'s yearly favourites into a copy of *store*.

    Steps
    -----
    1. Find the member's year-labelled favourites playlists.
    2. (concurrent) Fetch every year's tracks and audio features.
    3. Extend the track/album/artist ID lists; existing rows are copied as-is.
    4. Write rows for tracks and albums not ingested yet; queue empty artists.
    5. Resolve queued artists in one batched lookup, interning their genres.
    6. Record the member's rank-ordered reference triples for every year.

    Raises :class:`NoPlaylistsFound` or :class:`FeatureCountMismatch`; any
    failure of the fetch capability (other than the artist lookup) propagates.
    """
    years = sorted(years if years is not None else config.year_range())

    # -- Step 1: favourites playlists ----------------------------------------
    playlists = await fetcher.fetch_favorite_playlists(member_id)
    in_range = {y: p for y, p in (playlists or {}).items() if y in years}
    if not in_range:
        raise NoPlaylistsFound(member_id)

    fetched_years = sorted(in_range)
    logger.info(f"[ingest] {member_id}: favourites for {fetched_years}")

    # -- Step 2: per-year tracks + audio features ----------------------------
    tasks = [asyncio.ensure_future(_fetch_year(fetcher, y, in_range[y])) for y in fetched_years]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        # First failure aborts the member: stop the other years' requests too.
        for task in tasks:
            task.cancel()
        raise
    year_data = dict(zip(fetched_years, results))

    # -- Step 3: extend tables ----------------------------------------------
    ordered = [t for y in fetched_years for t in year_data[y][0]]

    track_ids = _extend_ids(store.tracks.ids, (t["id"] for t in ordered))
    album_ids = _extend_ids(store.albums.ids, (_album_id(t) for t in ordered))
    artist_ids = _extend_ids(
        store.artists.ids, (aid for t in ordered for aid in _artist_ids(t))
    )

    n_old = len(store.tracks)
    matrix = np.zeros((len(track_ids), NUM_TRACK_COLUMNS), dtype=float)
    matrix[:n_old] = store.tracks.features
    written = [True] * n_old + [False] * (len(track_ids) - n_old)

    album_rows = list(store.albums.rows) + [None] * (len(album_ids) - len(store.albums))
    artist_rows = list(store.artists.rows) + [None] * (len(artist_ids) - len(store.artists))
    genres = store.genres.copy()

    track_index = {tid: i for i, tid in enumerate(track_ids)}
    album_index = {aid: i for i, aid in enumerate(album_ids)}
    artist_index = {aid: i for i, aid in enumerate(artist_ids)}

    logger.info(
        f"[ingest] tables: {len(track_ids)} tracks (+{len(track_ids) - n_old}), "
        f"{len(album_ids)} albums, {len(artist_ids)} artists"
    )

    # -- Step 4: track + album rows, artist queue -----------------------------
    queued: dict[str, None] = {}
    for y in fetched_years:
        tracks, features = year_data[y]
        for track, feat in zip(tracks, features):
            idx = track_index[track["id"]]
            if not written[idx]:
                matrix[idx] = _track_row(track, feat)
                written[idx] = True

            aid = _album_id(track)
            if aid is not None and album_rows[album_index[aid]] is None:
                album_rows[album_index[aid]] = _album_row(track["album"])

            for arid in _artist_ids(track):
                if artist_rows[artist_index[arid]] is None:
                    queued[arid] = None

    # -- Step 5: batched artist lookup ---------------------------------------
    if queued:
        try:
            artists = await fetcher.fetch_artists(
                list(queued), batch_size=config.ARTIST_BATCH_SIZE
            )
        except ArtistFetchFailed as e:
            logger.warning(f"[ingest] {e}; leaving artist rows empty")
            artists = []

        for artist in artists:
            idx = artist_index.get(artist.get("id"))
            if idx is not None:
                artist_rows[idx] = _artist_row(artist, genres)

    # -- Step 6: reference triples -------------------------------------------
    refs: dict[int, list[ReferenceTriple]] = {}
    for y in years:
        tracks = year_data[y][0] if y in year_data else []
        refs[y] = [
            ReferenceTriple(
                track=track_index[t["id"]],
                album=album_index.get(_album_id(t), -1),
                artists=tuple(artist_index[arid] for arid in _artist_ids(t)),
            )
            for t in tracks
        ]

    members = list(store.members)
    entry = MemberPlaylists(member_id=member_id, years=refs)
    pos = store.member_index(member_id)
    if pos is None:
        members.append(entry)
    else:
        members[pos] = entry

    logger.info(f"[ingest] {member_id}: merged as member #{pos if pos is not None else len(members) - 1}")

    return FeatureStore(
        tracks=TrackTable(ids=track_ids, features=matrix),
        albums=EntityTable(ids=album_ids, rows=album_rows),
        artists=EntityTable(ids=artist_ids, rows=artist_rows),
        genres=genres,
        members=members,
    )
