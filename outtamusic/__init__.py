"""Group listening-history records and analysis."""

from outtamusic.analysis import recompute
from outtamusic.records import ingest_member

__all__ = ["ingest_member", "recompute"]
