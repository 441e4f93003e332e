from datetime import datetime

from reviewscope.data.schemas import SyncLogInput, SyncMode, SyncStatus
from reviewscope.data.sync_log import (
    decide_sync_mode,
    get_last_sync,
    get_sync_history,
    log_sync,
)


def entry(org_id, status, sync_type=SyncMode.FULL, **kwargs):
    return SyncLogInput(
        org_id=org_id,
        sync_type=sync_type,
        started_at=datetime(2025, 1, 1, 12, 0),
        finished_at=datetime(2025, 1, 1, 12, 1),
        status=status,
        **kwargs,
    )


def test_full_without_history(session, org_id):
    assert decide_sync_mode(session, org_id) == SyncMode.FULL
    assert get_last_sync(session, org_id) is None


def test_full_after_only_errors(session, org_id):
    log_sync(session, entry(org_id, SyncStatus.ERROR, error_message="timeout"))
    assert decide_sync_mode(session, org_id) == SyncMode.FULL


def test_incremental_after_success(session, org_id):
    log_sync(session, entry(org_id, SyncStatus.OK, reviews_added=10))
    assert decide_sync_mode(session, org_id) == SyncMode.INCREMENTAL

    # A later failure does not undo the earlier success
    log_sync(session, entry(org_id, SyncStatus.ERROR, SyncMode.INCREMENTAL))
    assert decide_sync_mode(session, org_id) == SyncMode.INCREMENTAL


def test_force_full(session, org_id):
    log_sync(session, entry(org_id, SyncStatus.OK))
    assert decide_sync_mode(session, org_id, force_full=True) == SyncMode.FULL


def test_ledger_is_append_only(session, org_id):
    first = log_sync(session, entry(org_id, SyncStatus.OK, reviews_added=3))
    second = log_sync(
        session, entry(org_id, SyncStatus.ERROR, SyncMode.INCREMENTAL, error_message="boom")
    )

    assert second.id > first.id
    last = get_last_sync(session, org_id)
    assert last.id == second.id
    assert (last.status, last.sync_type, last.error_message) == ("error", "incremental", "boom")

    history = get_sync_history(session, org_id)
    assert [e.id for e in history] == [second.id, first.id]
    assert history[1].reviews_added == 3
