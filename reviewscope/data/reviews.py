"""Review identity, batch upsert and queries."""

import hashlib
import logging
from collections import defaultdict
from datetime import datetime
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from reviewscope.data.database import transaction, utcnow
from reviewscope.data.models import Organization, Review, ReviewEmbedding
from reviewscope.data.schemas import RawReview, ReviewStats, TrendRow, UpsertResult
from reviewscope.embeddings.vectors import cosine_similarity

logger = logging.getLogger(__name__)

# Characters of review text that take part in the fallback identity hash
KEY_TEXT_PREFIX = 100

# Fields overwritten when an already stored review is seen again
MUTABLE_FIELDS = ("text", "stars", "likes", "dislikes", "business_response")


def review_key(org_id: str, review: RawReview) -> str:
    """Stable identity of a review.

    The review URL is used verbatim when present. Otherwise the key is a
    SHA-256 of organization, author, date and the first 100 characters of
    text. Two anonymous reviews posted on the same day with the same text
    prefix get the same key; this is a known limitation kept so that keys
    of already stored reviews never change.
    """
    if review.review_url:
        return review.review_url
    raw = "|".join(
        [
            org_id,
            review.author_name or "",
            review.date or "",
            (review.text or "")[:KEY_TEXT_PREFIX],
        ]
    )
    return "sha256:" + hashlib.sha256(raw.encode("utf-8")).hexdigest()


def upsert_reviews(session: Session, org_id: str, reviews: list[RawReview]) -> UpsertResult:
    """Insert new reviews and update known ones in a single transaction.

    Args:
        session: Database session
        org_id: Owning organization id
        reviews: Reviews in fetch order

    Returns:
        Counts of added and updated reviews
    """
    added = 0
    updated = 0

    with transaction(session):
        for raw in reviews:
            key = review_key(org_id, raw)
            # Autoflush makes rows added earlier in this batch visible here
            existing = session.scalars(
                select(Review).where(Review.review_key == key)
            ).first()

            if existing is None:
                session.add(
                    Review(
                        org_id=org_id,
                        review_key=key,
                        author_name=raw.author_name,
                        author_icon_url=raw.author_icon_url,
                        author_profile_url=raw.author_profile_url,
                        date=raw.date,
                        text=raw.text,
                        stars=raw.stars,
                        likes=raw.likes,
                        dislikes=raw.dislikes,
                        review_url=raw.review_url,
                        business_response=raw.business_response,
                    )
                )
                added += 1
            else:
                for field in MUTABLE_FIELDS:
                    setattr(existing, field, getattr(raw, field))
                existing.updated_at = utcnow()
                updated += 1

    logger.debug("Upserted reviews for %s: %d added, %d updated", org_id, added, updated)
    return UpsertResult(added=added, updated=updated)


def query_reviews(
    session: Session,
    org_id: str,
    since: Optional[str] = None,
    stars_min: Optional[float] = None,
    stars_max: Optional[float] = None,
    limit: Optional[int] = None,
) -> list[Review]:
    """Reviews of an organization, newest first."""
    query = select(Review).where(Review.org_id == org_id)
    if since:
        query = query.where(Review.date >= since)
    if stars_min is not None:
        query = query.where(Review.stars >= stars_min)
    if stars_max is not None:
        query = query.where(Review.stars <= stars_max)
    query = query.order_by(Review.date.desc(), Review.id.desc())
    if limit:
        query = query.limit(limit)
    return list(session.scalars(query))


def get_unanswered_reviews(
    session: Session,
    org_id: str,
    stars_max: Optional[float] = None,
    limit: Optional[int] = None,
) -> list[Review]:
    """Reviews with text that have no business response, newest first."""
    query = select(Review).where(
        Review.org_id == org_id,
        Review.business_response.is_(None),
        Review.text.is_not(None),
        Review.text != "",
    )
    if stars_max is not None:
        query = query.where(Review.stars <= stars_max)
    query = query.order_by(Review.date.desc(), Review.id.desc())
    if limit:
        query = query.limit(limit)
    return list(session.scalars(query))


def search_reviews(
    session: Session,
    text: str,
    org_id: Optional[str] = None,
    stars_min: Optional[float] = None,
    stars_max: Optional[float] = None,
    limit: int = 50,
) -> list[Review]:
    """Case-insensitive substring search over review text."""
    query = select(Review).where(Review.text.icontains(text, autoescape=True))
    if org_id:
        query = query.where(Review.org_id == org_id)
    if stars_min is not None:
        query = query.where(Review.stars >= stars_min)
    if stars_max is not None:
        query = query.where(Review.stars <= stars_max)
    query = query.order_by(Review.date.desc(), Review.id.desc()).limit(limit)
    return list(session.scalars(query))


def semantic_search_reviews(
    session: Session,
    query_embedding: list[float],
    org_id: Optional[str] = None,
    stars_min: Optional[float] = None,
    stars_max: Optional[float] = None,
    limit: int = 50,
) -> list[tuple[Review, float]]:
    """Reviews ranked by cosine similarity of their embedding to a query vector."""
    query = select(Review, ReviewEmbedding.text_embedding).join(
        ReviewEmbedding, ReviewEmbedding.review_id == Review.id
    )
    if org_id:
        query = query.where(Review.org_id == org_id)
    if stars_min is not None:
        query = query.where(Review.stars >= stars_min)
    if stars_max is not None:
        query = query.where(Review.stars <= stars_max)

    scored = [
        (review, cosine_similarity(query_embedding, vector))
        for review, vector in session.execute(query)
    ]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:limit]


def get_review_stats(session: Session, org_id: str, since: Optional[str] = None) -> ReviewStats:
    """Summary statistics of an organization's stored reviews."""
    org = session.scalars(select(Organization).where(Organization.org_id == org_id)).first()

    filters = [Review.org_id == org_id]
    if since:
        filters.append(Review.date >= since)

    agg = session.execute(
        select(
            func.count(Review.id).label("total"),
            func.coalesce(func.avg(Review.stars), 0).label("avg_stars"),
            func.coalesce(
                func.sum(case((Review.business_response.is_not(None), 1), else_=0)), 0
            ).label("responded"),
            func.coalesce(
                func.sum(case(((Review.text.is_not(None)) & (Review.text != ""), 1), else_=0)), 0
            ).label("with_text"),
            func.min(Review.date).label("first_date"),
            func.max(Review.date).label("last_date"),
        ).where(*filters)
    ).one()

    distribution = {str(star): 0 for star in range(1, 6)}
    for (stars,) in session.execute(select(Review.stars).where(*filters)):
        bucket = str(min(5, max(1, int(stars + 0.5))))
        distribution[bucket] += 1

    total = agg.total
    return ReviewStats(
        org_id=org_id,
        name=org.name if org else None,
        rating=org.rating if org else None,
        total_reviews=total,
        star_distribution=distribution,
        avg_stars=round(float(agg.avg_stars), 2),
        response_rate=round(agg.responded / total, 2) if total else 0.0,
        reviews_with_text=agg.with_text,
        first_date=agg.first_date,
        last_date=agg.last_date,
    )


def review_period(review_date: str, group_by: str = "month") -> Optional[str]:
    """Period label of an ISO review date, None if the date does not parse.

    Weeks follow ``%W`` numbering (weeks start on Monday, days before the
    first Monday fall in week 00).
    """
    try:
        parsed = datetime.fromisoformat(review_date.strip())
    except ValueError:
        return None
    if group_by == "week":
        return parsed.strftime("%Y-W%W")
    if group_by == "quarter":
        return f"{parsed.year}-Q{(parsed.month - 1) // 3 + 1}"
    if group_by == "month":
        return parsed.strftime("%Y-%m")
    raise ValueError(f"Unknown trend period: {group_by}")


def get_review_trends(
    session: Session,
    org_id: str,
    group_by: str = "month",
    since: Optional[str] = None,
    limit: Optional[int] = None,
) -> list[TrendRow]:
    """Review count and average stars per week, month or quarter.

    Undated reviews and dates that do not parse are left out.

    Args:
        session: Database session
        org_id: Organization to report on
        group_by: "week", "month" or "quarter"
        since: Only reviews on or after this ISO date
        limit: Maximum number of periods

    Returns:
        Trend rows, latest period first
    """
    if group_by not in ("week", "month", "quarter"):
        raise ValueError(f"Unknown trend period: {group_by}")

    query = select(Review.date, Review.stars).where(
        Review.org_id == org_id, Review.date.is_not(None)
    )
    if since:
        query = query.where(Review.date >= since)

    buckets: dict[str, list[float]] = defaultdict(list)
    for row in session.execute(query):
        period = review_period(row.date, group_by)
        if period is not None:
            buckets[period].append(row.stars)

    rows = [
        TrendRow(
            period=period,
            count=len(stars),
            avg_stars=round(sum(stars) / len(stars), 2),
        )
        for period, stars in sorted(buckets.items(), reverse=True)
    ]
    return rows[:limit] if limit else rows
