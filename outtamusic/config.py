"""Environment configuration loaded from .env file."""

import os
from dotenv import load_dotenv

load_dotenv()

# Spotify Web API
SPOTIFY_API: str = os.environ.get("SPOTIFY_API", "https://api.spotify.com/v1")
SPOTIFY_ACCESS_TOKEN: str = os.environ.get("SPOTIFY_ACCESS_TOKEN", "")

# Calendar years a group's "Your Top Songs" playlists are collected for
FIRST_YEAR: int = int(os.environ.get("FIRST_YEAR", "2016"))
LAST_YEAR: int = int(os.environ.get("LAST_YEAR", "2023"))

# k = member count + EXTRA_CLUSTERS for every clustering pass
EXTRA_CLUSTERS: int = int(os.environ.get("EXTRA_CLUSTERS", "3"))

# Spotify endpoint limits
ARTIST_BATCH_SIZE: int = int(os.environ.get("ARTIST_BATCH_SIZE", "50"))
AUDIO_FEATURES_BATCH_SIZE: int = int(os.environ.get("AUDIO_FEATURES_BATCH_SIZE", "100"))

LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")


def year_range() -> list[int]:
    """Configured years, inclusive on both ends."""
    return list(range(FIRST_YEAR, LAST_YEAR + 1))
