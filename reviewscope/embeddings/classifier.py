"""Classify reviews into subtopics by embedding similarity."""

import logging
from typing import Optional, Sequence

from sqlalchemy import delete, insert, select
from sqlalchemy.orm import Session

from reviewscope.config.settings import settings
from reviewscope.data.database import transaction
from reviewscope.data.embeddings import get_review_vectors
from reviewscope.data.models import Review, ReviewTopic, Topic
from reviewscope.data.schemas import TopicCandidate, TopicMatch
from reviewscope.embeddings.vectors import cosine_similarity

logger = logging.getLogger(__name__)


def classify_review(
    review_vec: Sequence[float],
    candidates: Sequence[TopicCandidate],
    threshold: float = 0.3,
    max_topics: int = 3,
) -> list[TopicMatch]:
    """Best-matching subtopics of one review.

    Candidates below ``threshold`` are dropped, the rest are sorted by
    descending similarity (ties keep candidate order) and truncated to
    ``max_topics``. An empty list is a valid result.
    """
    matches = [
        TopicMatch(
            topic_id=candidate.id,
            name=candidate.name,
            similarity=cosine_similarity(review_vec, candidate.embedding),
        )
        for candidate in candidates
    ]
    matches = [m for m in matches if m.similarity >= threshold]
    # sort() is stable, so equal similarities stay in candidate order
    matches.sort(key=lambda m: m.similarity, reverse=True)
    return matches[:max_topics]


def get_topic_candidates(session: Session, org_id: str) -> list[TopicCandidate]:
    """Subtopics of an organization that have a label embedding."""
    query = (
        select(Topic.id, Topic.name, Topic.embedding)
        .where(
            Topic.org_id == org_id,
            Topic.parent_id.is_not(None),
            Topic.embedding.is_not(None),
        )
        .order_by(Topic.id)
    )
    return [
        TopicCandidate(id=row.id, name=row.name, embedding=row.embedding)
        for row in session.execute(query)
    ]


def classify_organization(
    session: Session,
    org_id: str,
    threshold: Optional[float] = None,
    max_topics: Optional[int] = None,
) -> int:
    """Replace all classifications of an organization's reviews.

    Without embedded subtopics the organization is skipped and its stored
    classifications are left as they are. Otherwise the old rows are deleted
    and the new set inserted in one transaction.

    Args:
        session: Database session
        org_id: Organization to classify
        threshold: Minimum cosine similarity (default from settings)
        max_topics: Maximum subtopics per review (default from settings)

    Returns:
        Number of reviews that matched at least one subtopic
    """
    threshold = settings.classify_threshold if threshold is None else threshold
    max_topics = settings.classify_max_topics if max_topics is None else max_topics

    candidates = get_topic_candidates(session, org_id)
    if not candidates:
        logger.info("No embedded subtopics for %s, skipping classification", org_id)
        return 0

    rows = []
    classified = 0
    for review_id, vector in get_review_vectors(session, org_id):
        matches = classify_review(vector, candidates, threshold, max_topics)
        rows.extend(
            {"review_id": review_id, "topic_id": m.topic_id, "similarity": m.similarity}
            for m in matches
        )
        if matches:
            classified += 1

    with transaction(session):
        session.execute(
            delete(ReviewTopic).where(
                ReviewTopic.review_id.in_(
                    select(Review.id).where(Review.org_id == org_id)
                )
            ).execution_options(synchronize_session=False)
        )
        if rows:
            session.execute(insert(ReviewTopic), rows)

    logger.info(
        "Classified %d reviews of %s (%d topic links)", classified, org_id, len(rows)
    )
    return classified


def get_review_topics(session: Session, review_id: int) -> list[ReviewTopic]:
    """Stored classifications of a review, best match first."""
    return list(
        session.scalars(
            select(ReviewTopic)
            .where(ReviewTopic.review_id == review_id)
            .order_by(ReviewTopic.similarity.desc())
        )
    )
