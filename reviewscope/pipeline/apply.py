"""Apply a taxonomy file to the database."""

import logging

from sqlalchemy.orm import Session

from reviewscope.config.taxonomy import TaxonomyConfig
from reviewscope.data.database import transaction
from reviewscope.data.organizations import add_competitor, upsert_organization
from reviewscope.data.schemas import OrganizationInfo
from reviewscope.data.topics import replace_topics

logger = logging.getLogger(__name__)


def apply_config(session: Session, config: TaxonomyConfig) -> dict[str, int]:
    """Upsert companies, competitor links and topics in one transaction.

    Companies are created before any competitor link so links between two
    companies of the same file always resolve.

    Returns:
        Mapping of org_id to number of topics created
    """
    topic_counts: dict[str, int] = {}

    with transaction(session):
        for company in config.companies:
            upsert_organization(
                session,
                company.org_id,
                info=OrganizationInfo(name=company.name),
                role=company.role,
                service_type=company.service_type,
            )

        for company in config.companies:
            for competitor in company.competitors:
                add_competitor(
                    session,
                    company.org_id,
                    competitor.org_id,
                    priority=competitor.priority,
                    notes=competitor.notes,
                )

        for company in config.companies:
            topic_counts[company.org_id] = replace_topics(
                session, company.org_id, company.topic_list
            )

    logger.info("Applied config for %d companies", len(config.companies))
    return topic_counts

