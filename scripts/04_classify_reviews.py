#!/usr/bin/env python3
"""Script to classify embedded reviews into subtopics."""

import argparse
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from reviewscope.config.settings import configure_logging, settings
from reviewscope.data.database import get_engine, get_session
from reviewscope.data.organizations import list_organizations, require_organization
from reviewscope.embeddings.classifier import classify_organization
from reviewscope.exceptions import UnknownOrganizationError


def main():
    parser = argparse.ArgumentParser(description="Classify reviews into subtopics")
    parser.add_argument(
        "--orgs",
        nargs="+",
        help="Organization IDs to classify (default: all tracked)",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=settings.classify_threshold,
        help=f"Minimum cosine similarity (default: {settings.classify_threshold})",
    )
    parser.add_argument(
        "--max-topics",
        type=int,
        default=settings.classify_max_topics,
        help=f"Maximum subtopics per review (default: {settings.classify_max_topics})",
    )

    args = parser.parse_args()
    configure_logging()

    engine = get_engine()

    with get_session(engine) as session:
        try:
            if args.orgs:
                orgs = [require_organization(session, org_id) for org_id in args.orgs]
            else:
                orgs = list_organizations(session)
        except UnknownOrganizationError as e:
            print(f"Error: {e}")
            return 1

        org_ids = [org.org_id for org in orgs]
        total = 0
        for org_id in org_ids:
            count = classify_organization(
                session, org_id, threshold=args.threshold, max_topics=args.max_topics
            )
            print(f"{org_id:<20} {count} reviews classified")
            total += count

    print(f"\nClassified {total} reviews across {len(org_ids)} organizations")
    return 0


if __name__ == "__main__":
    sys.exit(main())
