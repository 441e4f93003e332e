#!/usr/bin/env python3
"""Run the complete pipeline from config to scores."""

import argparse
import subprocess
import sys
from pathlib import Path
from typing import Optional


def run_script(script_name: str, args: Optional[list[str]] = None) -> bool:
    """Run a pipeline script.

    Args:
        script_name: Name of the script file
        args: Additional arguments

    Returns:
        True if successful
    """
    script_path = Path(__file__).parent / script_name
    cmd = [sys.executable, str(script_path)]
    if args:
        cmd.extend(args)

    print(f"\n{'='*60}")
    print(f"Running: {script_name}")
    print(f"{'='*60}\n")

    result = subprocess.run(cmd)
    return result.returncode == 0


def main():
    parser = argparse.ArgumentParser(description="Run the complete review pipeline")
    parser.add_argument(
        "--skip-config",
        action="store_true",
        help="Skip applying the taxonomy config file",
    )
    parser.add_argument(
        "--skip-sync",
        action="store_true",
        help="Skip fetching reviews (use what is already stored)",
    )
    parser.add_argument(
        "--skip-embeddings",
        action="store_true",
        help="Skip the embedding step",
    )
    parser.add_argument(
        "--full",
        action="store_true",
        help="Force a full sync",
    )
    parser.add_argument(
        "--source",
        choices=["http", "files"],
        default="http",
        help="Where to fetch reviews from (default: http)",
    )
    parser.add_argument(
        "--orgs",
        nargs="+",
        default=None,
        help="Process only these organization IDs",
    )

    args = parser.parse_args()

    org_args = ["--orgs", *args.orgs] if args.orgs else []

    # Step 1: Config
    if not args.skip_config:
        if not run_script("01_apply_config.py"):
            print("Applying config failed!")
            return 1

    # Step 2: Sync. Per-organization failures are reported but do not stop the run
    if not args.skip_sync:
        sync_args = org_args + ["--source", args.source]
        if args.full:
            sync_args.append("--full")
        if not run_script("02_sync_reviews.py", sync_args):
            print("Some organizations failed to sync, continuing with stored reviews")

    # Step 3: Embeddings
    if not args.skip_embeddings:
        if not run_script("03_build_embeddings.py", org_args):
            print("Embedding generation failed!")
            return 1

    # Step 4: Classification
    if not run_script("04_classify_reviews.py", org_args):
        print("Classification failed!")
        return 1

    # Step 5: Scores
    if not run_script("05_compute_scores.py", org_args):
        print("Score computation failed!")
        return 1

    print("\n" + "=" * 60)
    print("PIPELINE COMPLETE!")
    print("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())
