#!/usr/bin/env python3
"""Script to fetch and store reviews for tracked organizations."""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from reviewscope.config.settings import configure_logging, settings
from reviewscope.data.database import get_engine, get_session_factory, init_database
from reviewscope.data.schemas import SyncStatus
from reviewscope.exceptions import UnknownOrganizationError
from reviewscope.fetchers import BaseFetcher, HttpFetcher, JsonFileFetcher
from reviewscope.pipeline.orchestrator import SyncPipeline


def build_fetcher(source: str, raw_dir: Path, save_raw: bool = False) -> BaseFetcher:
    """Create the fetcher for a source name."""
    if source == "files":
        return JsonFileFetcher(output_dir=raw_dir)
    return HttpFetcher(output_dir=raw_dir, save_raw=save_raw)


async def sync(pipeline: SyncPipeline, org_ids, force_full: bool):
    try:
        return await pipeline.sync_all(org_ids, force_full=force_full)
    finally:
        if isinstance(pipeline.fetcher, HttpFetcher):
            await pipeline.fetcher.aclose()


def main():
    parser = argparse.ArgumentParser(description="Sync reviews for tracked organizations")
    parser.add_argument(
        "--orgs",
        nargs="+",
        help="Organization IDs to sync (default: all tracked)",
    )
    parser.add_argument(
        "--full",
        action="store_true",
        help="Force a full sync instead of incremental",
    )
    parser.add_argument(
        "--source",
        choices=["http", "files"],
        default="http",
        help="Fetch from the scraping service or from saved JSON (default: http)",
    )
    parser.add_argument(
        "--raw-dir",
        type=Path,
        default=settings.raw_data_dir,
        help=f"Directory of saved fetch results (default: {settings.raw_data_dir})",
    )
    parser.add_argument(
        "--save-raw",
        action="store_true",
        help="Save fetched results as JSON under --raw-dir",
    )

    args = parser.parse_args()
    configure_logging()

    engine = get_engine()
    init_database(engine)

    pipeline = SyncPipeline(
        get_session_factory(engine),
        build_fetcher(args.source, args.raw_dir, args.save_raw),
    )

    try:
        outcomes = asyncio.run(sync(pipeline, args.orgs, args.full))
    except UnknownOrganizationError as e:
        print(f"Error: {e}")
        return 1

    if not outcomes:
        print("No tracked organizations. Run 01_apply_config.py first.")
        return 0

    print("\n" + "=" * 60)
    print("SUMMARY")
    print("=" * 60)
    failed = 0
    for outcome in outcomes:
        if outcome.status == SyncStatus.OK:
            print(
                f"{outcome.org_id:<20} {outcome.sync_type.value:<12} "
                f"fetched {outcome.reviews_fetched}, "
                f"added {outcome.reviews_added}, updated {outcome.reviews_updated}"
            )
        else:
            failed += 1
            print(f"{outcome.org_id:<20} {outcome.sync_type.value:<12} ERROR: {outcome.error}")

    print(f"\n{len(outcomes) - failed} succeeded, {failed} failed")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
