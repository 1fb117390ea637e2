"""Fixed column schemas for the feature tables.

Every feature lives at a column index decided here, once. Code elsewhere
addresses columns through ``TRACK_COL[...]`` rather than by looking names up
on each row.
"""

from __future__ import annotations

# Track-level columns come from the /tracks object, the rest from /audio-features.
TRACK_LEVEL_COLS = ["popularity"]

AUDIO_FEATURE_COLS = [
    "duration_ms",
    "acousticness",
    "danceability",
    "energy",
    "instrumentalness",
    "loudness",
    "mode",
    "key",
    "speechiness",
    "liveness",
    "tempo",
    "valence",
]

TRACK_COLUMNS = TRACK_LEVEL_COLS + AUDIO_FEATURE_COLS
TRACK_COL: dict[str, int] = {name: i for i, name in enumerate(TRACK_COLUMNS)}
NUM_TRACK_COLUMNS = len(TRACK_COLUMNS)

# Value of the "key" column when Spotify could not detect a key.
NO_KEY = -1

# (name, x column, y column) for the fixed 2-D projections.
STATIC_PAIRS: list[tuple[str, str, str]] = [
    ("valence_tempo", "valence", "tempo"),
    ("danceability_energy", "danceability", "energy"),
    ("instrumentality_acousticness", "instrumentalness", "acousticness"),
]
STATIC_PAIR_COLS: dict[str, tuple[int, int]] = {
    name: (TRACK_COL[x], TRACK_COL[y]) for name, x, y in STATIC_PAIRS
}

# Wider feature set reduced with PCA for the dynamic clustering pass.
DYNAMIC_FEATURE_COLS = [
    "acousticness",
    "danceability",
    "energy",
    "instrumentalness",
    "liveness",
    "loudness",
    "speechiness",
    "tempo",
    "valence",
]
DYNAMIC_COL_INDICES: list[int] = [TRACK_COL[c] for c in DYNAMIC_FEATURE_COLS]

# Statistics thresholds
INSTRUMENTAL_THRESHOLD = 0.5
LIVE_THRESHOLD = 0.8
MAJOR_THRESHOLD = 0.999999

NUM_KEYS = 12
TOP_N = 5
RANK_WEIGHT_BASE = 100



def decade_label(year: int) -> str:
    """Bucket a release year: ``pre-1900``, ``1900s`` … ``2010s``, ``2020s+``."""
    if year < 1900:
        return "pre-1900"
    if year >= 2020:
        return "2020s+"
    return f"{year - year % 10}s"
