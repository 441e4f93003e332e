#!/usr/bin/env python3
"""Script to track, untrack and inspect organizations and competitors."""

import argparse
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from reviewscope.config.settings import configure_logging
from reviewscope.data.database import get_engine, get_session, init_database
from reviewscope.data.organizations import (
    add_competitor,
    get_competitors,
    list_organizations,
    remove_competitor,
    remove_organization,
    require_organization,
    upsert_organization,
)
from reviewscope.data.reviews import get_review_stats, get_review_trends
from reviewscope.data.schemas import OrganizationInfo, Role
from reviewscope.data.sync_log import get_sync_history
from reviewscope.exceptions import UnknownOrganizationError


def cmd_list(session, args):
    orgs = list_organizations(session, role=args.role)
    if not orgs:
        print("No tracked organizations")
        return
    for org in orgs:
        rating = f"{org.rating:.1f}" if org.rating is not None else "-"
        print(f"{org.org_id:<20} {org.role:<11} {rating:>4}  {org.name or ''}")


def cmd_track(session, args):
    upsert_organization(
        session,
        args.org_id,
        info=OrganizationInfo(name=args.name),
        role=args.role,
        service_type=args.service_type,
    )
    print(f"Tracking {args.org_id}")


def cmd_untrack(session, args):
    if remove_organization(session, args.org_id):
        print(f"Removed {args.org_id} and all its reviews")
    else:
        print(f"{args.org_id} was not tracked")


def cmd_competitors(session, args):
    require_organization(session, args.org_id)
    if args.add:
        add_competitor(session, args.org_id, args.add, priority=args.priority)
        print(f"Added competitor {args.add}")
    elif args.remove:
        remove_competitor(session, args.org_id, args.remove)
        print(f"Removed competitor {args.remove}")
    for org in get_competitors(session, args.org_id):
        print(f"  {org.org_id:<20} {org.name or ''}")


def cmd_stats(session, args):
    require_organization(session, args.org_id)
    stats = get_review_stats(session, args.org_id, since=args.since)
    print(f"{stats.name or stats.org_id}")
    print(f"  Reviews: {stats.total_reviews} ({stats.reviews_with_text} with text)")
    print(f"  Average stars: {stats.avg_stars:.2f}")
    print(f"  Response rate: {stats.response_rate:.0%}")
    print(f"  Date range: {stats.first_date or '-'} to {stats.last_date or '-'}")
    for stars, count in sorted(stats.star_distribution.items(), reverse=True):
        print(f"  {stars} stars: {count}")


def cmd_trends(session, args):
    require_organization(session, args.org_id)
    rows = get_review_trends(
        session, args.org_id, group_by=args.group_by, since=args.since, limit=args.limit
    )
    if not rows:
        print("No dated reviews")
    for row in rows:
        print(f"  {row.period:<10} {row.count:>5} reviews  {row.avg_stars:.2f} stars")


def cmd_history(session, args):
    require_organization(session, args.org_id)
    for entry in get_sync_history(session, args.org_id, limit=args.limit):
        detail = (
            f"+{entry.reviews_added} ~{entry.reviews_updated}"
            if entry.status == "ok"
            else entry.error_message
        )
        print(f"  {entry.started_at:%Y-%m-%d %H:%M} {entry.sync_type:<12} {entry.status:<6} {detail}")


def main():
    parser = argparse.ArgumentParser(description="Manage tracked organizations")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p = subparsers.add_parser("list", help="List tracked organizations")
    p.add_argument("--role", type=Role, choices=list(Role), default=None)
    p.set_defaults(func=cmd_list)

    p = subparsers.add_parser("track", help="Start tracking an organization")
    p.add_argument("org_id")
    p.add_argument("--name", default=None)
    p.add_argument("--role", type=Role, choices=list(Role), default=Role.TRACKED)
    p.add_argument("--service-type", default=None)
    p.set_defaults(func=cmd_track)

    p = subparsers.add_parser("untrack", help="Stop tracking and delete all data")
    p.add_argument("org_id")
    p.set_defaults(func=cmd_untrack)

    p = subparsers.add_parser("competitors", help="List, add or remove competitors")
    p.add_argument("org_id")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--add", metavar="COMPETITOR_ID")
    group.add_argument("--remove", metavar="COMPETITOR_ID")
    p.add_argument("--priority", type=int, default=None)
    p.set_defaults(func=cmd_competitors)

    p = subparsers.add_parser("stats", help="Review statistics")
    p.add_argument("org_id")
    p.add_argument("--since", default=None, help="Only reviews on or after this ISO date")
    p.set_defaults(func=cmd_stats)

    p = subparsers.add_parser("trends", help="Review volume and stars over time")
    p.add_argument("org_id")
    p.add_argument("--group-by", choices=["week", "month", "quarter"], default="month")
    p.add_argument("--since", default=None, help="Only reviews on or after this ISO date")
    p.add_argument("--limit", type=int, default=None)
    p.set_defaults(func=cmd_trends)

    p = subparsers.add_parser("history", help="Sync history")
    p.add_argument("org_id")
    p.add_argument("--limit", type=int, default=20)
    p.set_defaults(func=cmd_history)

    args = parser.parse_args()
    configure_logging()

    engine = get_engine()
    init_database(engine)

    with get_session(engine) as session:
        try:
            args.func(session, args)
        except UnknownOrganizationError as e:
            print(f"Error: {e}")
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
