"""Append-only ledger of sync attempts."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from reviewscope.data.database import transaction
from reviewscope.data.models import SyncLogEntry
from reviewscope.data.schemas import SyncLogInput, SyncMode, SyncStatus


def log_sync(session: Session, entry: SyncLogInput) -> SyncLogEntry:
    """Record one sync attempt. Entries are never updated afterwards."""
    row = SyncLogEntry(
        org_id=entry.org_id,
        sync_type=SyncMode(entry.sync_type).value,
        reviews_added=entry.reviews_added,
        reviews_updated=entry.reviews_updated,
        started_at=entry.started_at,
        finished_at=entry.finished_at,
        status=SyncStatus(entry.status).value,
        error_message=entry.error_message,
    )
    with transaction(session):
        session.add(row)
    return row


def get_last_sync(session: Session, org_id: str) -> Optional[SyncLogEntry]:
    """Most recent ledger entry of an organization."""
    return session.scalars(
        select(SyncLogEntry)
        .where(SyncLogEntry.org_id == org_id)
        .order_by(SyncLogEntry.id.desc())
        .limit(1)
    ).first()


def get_sync_history(session: Session, org_id: str, limit: int = 20) -> list[SyncLogEntry]:
    """Ledger entries of an organization, newest first."""
    return list(
        session.scalars(
            select(SyncLogEntry)
            .where(SyncLogEntry.org_id == org_id)
            .order_by(SyncLogEntry.id.desc())
            .limit(limit)
        )
    )


def has_successful_sync(session: Session, org_id: str) -> bool:
    """Whether any ledger entry with status ok exists for the organization."""
    return (
        session.scalars(
            select(SyncLogEntry.id)
            .where(
                SyncLogEntry.org_id == org_id,
                SyncLogEntry.status == SyncStatus.OK.value,
            )
            .limit(1)
        ).first()
        is not None
    )


def decide_sync_mode(session: Session, org_id: str, force_full: bool = False) -> SyncMode:
    """Full sync until the first successful one, incremental afterwards.

    The decision is always read from storage, never cached.
    """
    if force_full or not has_successful_sync(session, org_id):
        return SyncMode.FULL
    return SyncMode.INCREMENTAL
