"""Per-organization topic taxonomy storage."""

from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from reviewscope.config.taxonomy import TopicConfig
from reviewscope.data.database import transaction
from reviewscope.data.models import Topic


def replace_topics(session: Session, org_id: str, topics: list[TopicConfig]) -> int:
    """Replace an organization's taxonomy with the given parents and subtopics.

    Stored classifications and cached scores of the old topics are removed
    with them.

    Returns:
        Number of topics created (parents and subtopics)
    """
    created = 0
    with transaction(session):
        clear_topics_for_org(session, org_id)
        for topic in topics:
            parent = Topic(org_id=org_id, parent_id=None, name=topic.name)
            session.add(parent)
            session.flush()
            created += 1
            for sub in topic.subtopics:
                session.add(Topic(org_id=org_id, parent_id=parent.id, name=sub))
                created += 1
    return created


def clear_topics_for_org(session: Session, org_id: str) -> None:
    """Delete every topic of an organization, subtopics first."""
    with transaction(session):
        session.execute(
            delete(Topic).where(Topic.org_id == org_id, Topic.parent_id.is_not(None))
        )
        session.execute(delete(Topic).where(Topic.org_id == org_id))


def get_topics_for_org(session: Session, org_id: str) -> list[Topic]:
    return list(
        session.scalars(select(Topic).where(Topic.org_id == org_id).order_by(Topic.id))
    )


def get_parent_topics(session: Session, org_id: str) -> list[Topic]:
    return list(
        session.scalars(
            select(Topic)
            .where(Topic.org_id == org_id, Topic.parent_id.is_(None))
            .order_by(Topic.id)
        )
    )


def get_subtopics(session: Session, parent_id: int) -> list[Topic]:
    return list(
        session.scalars(select(Topic).where(Topic.parent_id == parent_id).order_by(Topic.id))
    )


def get_topic(session: Session, topic_id: int) -> Optional[Topic]:
    return session.get(Topic, topic_id)


def save_topic_embedding(session: Session, topic_id: int, embedding: list[float]) -> None:
    """Store the label embedding of a topic."""
    with transaction(session):
        topic = session.get(Topic, topic_id)
        if topic is not None:
            topic.embedding = list(embedding)
