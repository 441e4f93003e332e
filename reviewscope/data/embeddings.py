"""Review embedding storage."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from reviewscope.data.database import insert_for, transaction, utcnow
from reviewscope.data.models import Review, ReviewEmbedding


def save_review_embedding(
    session: Session, review_id: int, model: str, embedding: list[float]
) -> None:
    """Insert or replace the text embedding of a review."""
    table = ReviewEmbedding.__table__
    stmt = insert_for(session, table).values(
        review_id=review_id, model=model, text_embedding=list(embedding)
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.review_id],
        set_={
            "model": stmt.excluded.model,
            "text_embedding": stmt.excluded.text_embedding,
            "created_at": utcnow(),
        },
    )
    with transaction(session):
        session.execute(stmt)


def get_review_embedding(session: Session, review_id: int) -> Optional[ReviewEmbedding]:
    return session.scalars(
        select(ReviewEmbedding)
        .where(ReviewEmbedding.review_id == review_id)
        .execution_options(populate_existing=True)
    ).first()


def get_unembedded_reviews(session: Session, org_id: str) -> list[tuple[int, str]]:
    """(id, text) of reviews with text but without an embedding."""
    query = (
        select(Review.id, Review.text)
        .outerjoin(ReviewEmbedding, ReviewEmbedding.review_id == Review.id)
        .where(
            Review.org_id == org_id,
            ReviewEmbedding.review_id.is_(None),
            Review.text.is_not(None),
            Review.text != "",
        )
        .order_by(Review.id)
    )
    return [(row.id, row.text) for row in session.execute(query)]


def get_embeddable_reviews(session: Session, org_id: str) -> list[tuple[int, str]]:
    """(id, text) of every review with non-empty text."""
    query = (
        select(Review.id, Review.text)
        .where(Review.org_id == org_id, Review.text.is_not(None), Review.text != "")
        .order_by(Review.id)
    )
    return [(row.id, row.text) for row in session.execute(query)]


def get_review_vectors(session: Session, org_id: str) -> list[tuple[int, list[float]]]:
    """(review_id, vector) of every embedded review of an organization."""
    query = (
        select(ReviewEmbedding.review_id, ReviewEmbedding.text_embedding)
        .join(Review, Review.id == ReviewEmbedding.review_id)
        .where(Review.org_id == org_id)
        .order_by(ReviewEmbedding.review_id)
    )
    return [(row.review_id, row.text_embedding) for row in session.execute(query)]
