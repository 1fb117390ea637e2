"""Spotify Web API helpers – favourites playlists, tracks, audio features, artists.

:class:`SpotifyClient` is the fetch capability :func:`outtamusic.records.ingest_member`
consumes. It returns raw Spotify JSON objects; turning them into feature rows is
the job of :mod:`outtamusic.records`.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from aiohttp import ClientError, ClientSession

from outtamusic import config
from outtamusic.errors import ArtistFetchFailed

logger = logging.getLogger(__name__)

# "Your Top Songs 2019" – Spotify's yearly favourites playlists.
FAVORITES_PATTERN = re.compile(r"^Your Top Songs (20\d\d)$")

_PLAYLIST_PAGE_SIZE = 50
_TRACK_PAGE_SIZE = 100


def _auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def favorites_by_year(playlists: list[dict]) -> dict[int, dict]:
    """Pick one "Your Top Songs YYYY" playlist per year (first match wins)."""
    found: dict[int, dict] = {}
    for p in playlists:
        match = FAVORITES_PATTERN.match(p.get("name") or "")
        if not match:
            continue
        year = int(match.group(1))
        if year not in found:
            found[year] = p
    return found


class SpotifyClient:
    """Async fetch capability bound to one member's access token."""

    def __init__(self, token: str, api: Optional[str] = None):
        self.token = token
        self.api = api or config.SPOTIFY_API

    async def _get_json(
        self,
        session: ClientSession,
        url: str,
        params: Optional[dict[str, Any]] = None,
    ) -> dict:
        async with session.get(url, headers=_auth_header(self.token), params=params) as resp:
            if resp.status != 200:
                error_detail = await resp.text()
                logger.error(f"[spotify] HTTP {resp.status} on {url}: {error_detail[:200]}")
                resp.raise_for_status()
            return await resp.json()

    async def fetch_favorite_playlists(self, member_id: str) -> dict[int, dict]:
        """Return ``{year: playlist}`` for the member's yearly favourites."""
        playlists: list[dict] = []
        url: str | None = f"{self.api}/users/{member_id}/playlists?limit={_PLAYLIST_PAGE_SIZE}"

        async with ClientSession() as session:
            while url:
                data = await self._get_json(session, url)
                playlists.extend(data.get("items", []))
                url = data.get("next")

        found = favorites_by_year(playlists)
        logger.info(f"[playlists] {member_id}: favourites for years {sorted(found)}")
        return found

    async def fetch_tracks(self, playlist: dict) -> list[dict]:
        """Every non-local track of *playlist*, in playlist (rank) order."""
        tracks: list[dict] = []
        url: str | None = (
            f"{self.api}/playlists/{playlist['id']}/tracks?limit={_TRACK_PAGE_SIZE}"
        )

        async with ClientSession() as session:
            while url:
                data = await self._get_json(session, url)
                for item in data.get("items", []):
                    t = item.get("track")
                    if item.get("is_local") or t is None or t.get("id") is None:
                        continue  # local files / unavailable tracks
                    tracks.append(t)
                url = data.get("next")

        return tracks

    async def fetch_audio_features(self, track_ids: list[str]) -> dict:
        """``{"audio_features": [...]}`` aligned with *track_ids* (nulls kept)."""
        features: list[Optional[dict]] = []
        size = config.AUDIO_FEATURES_BATCH_SIZE

        async with ClientSession() as session:
            for i in range(0, len(track_ids), size):
                batch = track_ids[i : i + size]
                data = await self._get_json(
                    session, f"{self.api}/audio-features", params={"ids": ",".join(batch)}
                )
                features.extend(data.get("audio_features") or [])

        return {"audio_features": features}

    async def fetch_artists(
        self,
        artist_ids: list[str],
        batch_size: int = config.ARTIST_BATCH_SIZE,
    ) -> list[dict]:
        """Full artist objects, fetched in buckets of *batch_size*.

        Raises :class:`ArtistFetchFailed` if any bucket cannot be retrieved.
        """
        artists: list[dict] = []
        try:
            async with ClientSession() as session:
                for i in range(0, len(artist_ids), batch_size):
                    batch = artist_ids[i : i + batch_size]
                    data = await self._get_json(
                        session, f"{self.api}/artists", params={"ids": ",".join(batch)}
                    )
                    artists.extend(a for a in data.get("artists", []) if a)
        except ClientError as e:
            raise ArtistFetchFailed(artist_ids, f"{type(e).__name__}: {e}") from e
        return artists
