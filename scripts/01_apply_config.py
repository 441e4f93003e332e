#!/usr/bin/env python3
"""Script to apply the company and topic taxonomy file to the database."""

import argparse
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from reviewscope.config.settings import configure_logging, settings
from reviewscope.config.taxonomy import load_taxonomy
from reviewscope.data.database import get_engine, get_session, init_database
from reviewscope.exceptions import ReviewScopeError
from reviewscope.pipeline.apply import apply_config


def main():
    parser = argparse.ArgumentParser(description="Apply taxonomy config file")
    parser.add_argument(
        "--config",
        type=Path,
        default=settings.taxonomy_config_path,
        help=f"Path to YAML config (default: {settings.taxonomy_config_path})",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and print the config without writing",
    )

    args = parser.parse_args()
    configure_logging()

    try:
        config = load_taxonomy(args.config)
    except ReviewScopeError as e:
        print(f"Invalid config: {e}")
        return 1

    print(f"Loaded {len(config.companies)} companies from {args.config}")
    for company in config.companies:
        topics = company.topic_list
        subtopics = sum(len(t.subtopics) for t in topics)
        print(
            f"  {company.org_id:<20} {company.role.value:<11} "
            f"{len(topics)} topics, {subtopics} subtopics, "
            f"{len(company.competitors)} competitors"
        )

    if args.dry_run:
        return 0

    engine = get_engine()
    init_database(engine)

    with get_session(engine) as session:
        try:
            topic_counts = apply_config(session, config)
        except ReviewScopeError as e:
            print(f"Apply failed: {e}")
            return 1

    print(f"\nApplied config: {sum(topic_counts.values())} topics stored")
    return 0


if __name__ == "__main__":
    sys.exit(main())
