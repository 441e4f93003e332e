"""Tracked organizations and competitor relations."""

import logging
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, aliased

from reviewscope.data.database import insert_for, transaction, utcnow
from reviewscope.data.models import CompetitorLink, Organization
from reviewscope.data.schemas import OrganizationInfo, Role
from reviewscope.exceptions import UnknownOrganizationError

logger = logging.getLogger(__name__)


def upsert_organization(
    session: Session,
    org_id: str,
    info: Optional[OrganizationInfo] = None,
    role: Optional[Role] = None,
    service_type: Optional[str] = None,
) -> None:
    """Create an organization or merge new non-null fields into it.

    Null fields never overwrite stored values. ``role`` and ``service_type``
    are only changed when given.

    Args:
        session: Database session
        org_id: External organization identifier
        info: Metadata observed on the source page
        role: Tracking role
        service_type: Service type used for taxonomy inheritance
    """
    info = info or OrganizationInfo()
    table = Organization.__table__
    stmt = insert_for(session, table).values(
        org_id=org_id,
        name=info.name,
        rating=info.rating,
        review_count=info.review_count,
        address=info.address,
        categories=info.categories or None,
        role=(role or Role.TRACKED).value,
        service_type=service_type,
    )
    excluded = stmt.excluded
    update = {
        "name": func.coalesce(excluded.name, table.c.name),
        "rating": func.coalesce(excluded.rating, table.c.rating),
        "review_count": func.coalesce(excluded.review_count, table.c.review_count),
        "address": func.coalesce(excluded.address, table.c.address),
        "categories": func.coalesce(excluded.categories, table.c.categories),
        "service_type": func.coalesce(excluded.service_type, table.c.service_type),
        "updated_at": utcnow(),
    }
    if role is not None:
        update["role"] = excluded.role
    stmt = stmt.on_conflict_do_update(index_elements=[table.c.org_id], set_=update)

    with transaction(session):
        session.execute(stmt)


def get_organization(session: Session, org_id: str) -> Optional[Organization]:
    """Get an organization by external id."""
    return session.scalars(
        select(Organization)
        .where(Organization.org_id == org_id)
        .execution_options(populate_existing=True)
    ).first()


def require_organization(session: Session, org_id: str) -> Organization:
    """Get an organization or raise UnknownOrganizationError."""
    org = get_organization(session, org_id)
    if org is None:
        raise UnknownOrganizationError(org_id)
    return org


def list_organizations(session: Session, role: Optional[Role] = None) -> list[Organization]:
    """List tracked organizations ordered by name."""
    query = select(Organization).order_by(Organization.name, Organization.org_id)
    if role is not None:
        query = query.where(Organization.role == Role(role).value)
    return list(session.scalars(query))


def remove_organization(session: Session, org_id: str) -> bool:
    """Untrack an organization, deleting every dependent row.

    Returns:
        True if the organization existed
    """
    with transaction(session):
        result = session.execute(
            delete(Organization).where(Organization.org_id == org_id)
        )
    session.expire_all()
    removed = result.rowcount > 0
    if removed:
        logger.info("Removed organization %s", org_id)
    return removed


def add_competitor(
    session: Session,
    org_id: str,
    competitor_org_id: str,
    priority: Optional[int] = None,
    notes: Optional[str] = None,
) -> None:
    """Link a competitor to an organization; both must be tracked."""
    require_organization(session, org_id)
    require_organization(session, competitor_org_id)

    table = CompetitorLink.__table__
    stmt = insert_for(session, table).values(
        org_id=org_id,
        competitor_org_id=competitor_org_id,
        priority=priority,
        notes=notes,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.org_id, table.c.competitor_org_id],
        set_={"priority": stmt.excluded.priority, "notes": stmt.excluded.notes},
    )
    with transaction(session):
        session.execute(stmt)


def remove_competitor(session: Session, org_id: str, competitor_org_id: str) -> None:
    """Remove a competitor link."""
    with transaction(session):
        session.execute(
            delete(CompetitorLink).where(
                CompetitorLink.org_id == org_id,
                CompetitorLink.competitor_org_id == competitor_org_id,
            )
        )


def get_competitors(session: Session, org_id: str) -> list[Organization]:
    """Competitors of an organization ordered by priority, then name."""
    link = aliased(CompetitorLink)
    query = (
        select(Organization)
        .join(link, link.competitor_org_id == Organization.org_id)
        .where(link.org_id == org_id)
        .order_by(link.priority.is_(None), link.priority, Organization.name)
    )
    return list(session.scalars(query))
