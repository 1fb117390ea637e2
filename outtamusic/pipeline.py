"""Command line orchestrator – ingest one member, then re-run the group analysis.

Public entry point: :func:`run_pipeline`.

    python -m outtamusic.pipeline MEMBER_ID --records records.json --analysis analysis.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from outtamusic import config
from outtamusic.analysis import recompute
from outtamusic.errors import PipelineError
from outtamusic.models import AnalysisSnapshot, FeatureStore
from outtamusic.records import FetchCapabilities, ingest_member
from outtamusic.serialization import (
    analysis_from_dict,
    analysis_to_dict,
    store_from_dict,
    store_to_dict,
)
from outtamusic.spotify_client import SpotifyClient

logger = logging.getLogger(__name__)


def _load_json(path: Path) -> Optional[dict]:
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _save_json(path: Path, data: dict) -> None:
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False)


async def run_pipeline(
    store: FeatureStore,
    prior: Optional[AnalysisSnapshot],
    member_id: str,
    fetcher: FetchCapabilities,
    group_members: Optional[Sequence[str]] = None,
    years: Optional[list[int]] = None,
) -> tuple[FeatureStore, AnalysisSnapshot]:
    """Ingest *member_id* into *store*, then recompute the analysis.

    Steps
    -----
    1. Ingest the member's favourites (all-or-nothing).
    2. Recompute the analysis over every member and year.
    """
    new_store = await ingest_member(store, member_id, fetcher, years=years)
    members = list(group_members) if group_members else [m.member_id for m in new_store.members]
    analysis = recompute(new_store, prior, members)
    return new_store, analysis


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Add a member's top songs to a group and re-analyse it.")
    parser.add_argument("member_id", help="Spotify user ID of the joining member")
    parser.add_argument("--records", type=Path, default=Path("records.json"))
    parser.add_argument("--analysis", type=Path, default=Path("analysis.json"))
    parser.add_argument("--token", default=config.SPOTIFY_ACCESS_TOKEN, help="Spotify access token")
    parser.add_argument(
        "--group",
        nargs="*",
        default=None,
        help="All group member IDs (sizes the clustering); defaults to members with records",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="[%(asctime)s] %(name)s - %(levelname)s - %(message)s",
    )

    if not args.token:
        logger.error("No Spotify access token (set SPOTIFY_ACCESS_TOKEN or pass --token)")
        return 1

    store = store_from_dict(_load_json(args.records))
    prior = analysis_from_dict(_load_json(args.analysis))

    try:
        store, analysis = asyncio.run(
            run_pipeline(store, prior, args.member_id, SpotifyClient(args.token), args.group)
        )
    except PipelineError as e:
        logger.error(f"[pipeline] {e}")
        return 1

    _save_json(args.records, store_to_dict(store))
    _save_json(args.analysis, analysis_to_dict(analysis))
    logger.info(
        f"[pipeline] saved {len(store.tracks)} track(s) for {len(store.members)} member(s) "
        f"to {args.records} and {args.analysis}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
