#!/usr/bin/env python3
"""Script to compute and cache recency-weighted topic scores."""

import argparse
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from reviewscope.config.settings import configure_logging
from reviewscope.data.database import get_engine, get_session
from reviewscope.data.organizations import list_organizations, require_organization
from reviewscope.data.schemas import OrganizationScore
from reviewscope.exceptions import UnknownOrganizationError
from reviewscope.processing.scoring import (
    ScoreComputer,
    compare_organizations,
    refresh_stored_scores,
)


def print_score(result: OrganizationScore, show_subtopics: bool) -> None:
    print(f"\n{result.name} ({result.org_id})")
    print(f"  Overall: {result.overall_score:.1f} from {result.total_reviews} reviews")
    for topic in result.topics:
        print(
            f"  {topic.name:<30} {topic.score:>4.1f}  "
            f"{topic.review_count:>5} reviews  {topic.confidence.value}"
        )
        if show_subtopics:
            for sub in topic.subtopics or []:
                print(f"    {sub.name:<28} {sub.score:>4.1f}  {sub.review_count:>5} reviews")


def main():
    parser = argparse.ArgumentParser(description="Compute topic scores")
    parser.add_argument(
        "--orgs",
        nargs="+",
        help="Organization IDs to score (default: all tracked)",
    )
    parser.add_argument(
        "--subtopics",
        action="store_true",
        help="Print subtopic scores",
    )
    parser.add_argument(
        "--compare",
        nargs=2,
        metavar=("ORG_A", "ORG_B"),
        help="Print per-topic deltas between two organizations",
    )

    args = parser.parse_args()
    configure_logging()

    engine = get_engine()

    with get_session(engine) as session:
        computer = ScoreComputer(session)
        try:
            if args.compare:
                for org_id in args.compare:
                    require_organization(session, org_id)
                score_a, score_b = (
                    computer.compute_organization_score(org_id) for org_id in args.compare
                )
                print(f"{'Topic':<30} {score_a.org_id:>12} {score_b.org_id:>12} {'delta':>7}")
                for row in compare_organizations(score_a, score_b):
                    print(f"{row.name:<30} {row.score_a:>12.1f} {row.score_b:>12.1f} {row.delta:>+7.1f}")
                return 0

            if args.orgs:
                orgs = [require_organization(session, org_id) for org_id in args.orgs]
            else:
                orgs = list_organizations(session)
        except UnknownOrganizationError as e:
            print(f"Error: {e}")
            return 1

        org_ids = [org.org_id for org in orgs]
        stored = 0
        for org_id in org_ids:
            result = computer.compute_organization_score(org_id, include_subtopics=True)
            stored += refresh_stored_scores(session, org_id, result)
            print_score(result, args.subtopics)

    print(f"\nStored {stored} topic scores for {len(org_ids)} organizations")
    return 0


if __name__ == "__main__":
    sys.exit(main())
