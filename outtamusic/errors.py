"""Failure types raised by the ingestion and analysis pipeline."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every typed pipeline failure."""


class NoPlaylistsFound(PipelineError):
    """The member has no year-labelled favourites playlists in range."""

    def __init__(self, member_id: str):
        super().__init__(f"No 'Your Top Songs' playlists found for member {member_id}")
        self.member_id = member_id


class FeatureCountMismatch(PipelineError):
    """Audio-feature list length differs from the track list length."""

    def __init__(self, year: int, expected: int, actual: int):
        super().__init__(
            f"Audio features for {year}: expected {expected} entries, got {actual}"
        )
        self.year = year
        self.expected = expected
        self.actual = actual


class ArtistFetchFailed(PipelineError):
    """A batched artist lookup failed. Ingestion degrades instead of aborting."""

    def __init__(self, artist_ids: list[str], reason: str = ""):
        msg = f"Artist lookup failed for {len(artist_ids)} artist(s)"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.artist_ids = artist_ids


class ClusteringInputEmpty(PipelineError):
    """A year has no pooled tracks to cluster."""

    def __init__(self, year: int):
        super().__init__(f"No pooled tracks to cluster for {year}")
        self.year = year
