"""Recency-weighted quality scores from classified reviews."""

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from reviewscope.data.database import insert_for, transaction, utcnow
from reviewscope.data.models import Review, ReviewTopic, TopicScore
from reviewscope.data.organizations import get_organization
from reviewscope.data.schemas import (
    Confidence,
    OrganizationScore,
    ScoreResult,
    TopicComparison,
    TopicScoreResult,
)
from reviewscope.data.topics import get_parent_topics, get_subtopics

logger = logging.getLogger(__name__)

SIX_MONTHS = timedelta(days=6 * 30)
TWELVE_MONTHS = timedelta(days=12 * 30)

HIGH_CONFIDENCE_REVIEWS = 20
MEDIUM_CONFIDENCE_REVIEWS = 5


def round_half_up(value: float, digits: int = 1) -> float:
    """Round to ``digits`` decimals with halves going up (6.25 -> 6.3)."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def stars_to_score(stars: float) -> float:
    """Map 1-5 stars onto the 2-10 scale."""
    return stars * 2


def parse_review_date(value: Union[str, date, datetime]) -> datetime:
    """Parse an ISO date or datetime into a naive UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def recency_weight(review_date: Union[str, date, datetime], now: Optional[datetime] = None) -> float:
    """2.0 for reviews up to six months old, 1.5 up to twelve, else 1.0.

    A date that does not parse as ISO 8601 gets the base weight 1.0.
    """
    now = now or utcnow()
    try:
        age = now - parse_review_date(review_date)
    except ValueError:
        logger.debug("Unparseable review date %r, using base weight", review_date)
        return 1.0
    if age <= SIX_MONTHS:
        return 2.0
    if age <= TWELVE_MONTHS:
        return 1.5
    return 1.0


def confidence_level(review_count: int) -> Confidence:
    if review_count >= HIGH_CONFIDENCE_REVIEWS:
        return Confidence.HIGH
    if review_count >= MEDIUM_CONFIDENCE_REVIEWS:
        return Confidence.MEDIUM
    return Confidence.LOW


def compute_topic_score(
    reviews: Iterable[tuple[float, Union[str, date, datetime]]],
    now: Optional[datetime] = None,
) -> ScoreResult:
    """Recency-weighted mean of star scores.

    Args:
        reviews: (stars, date) pairs of the reviews classified under a topic
        now: Reference time for review age

    Returns:
        Score rounded to one decimal, 0 without reviews
    """
    now = now or utcnow()
    weighted_sum = 0.0
    total_weight = 0.0
    count = 0

    for stars, review_date in reviews:
        weight = recency_weight(review_date, now)
        weighted_sum += stars_to_score(stars) * weight
        total_weight += weight
        count += 1

    if count == 0:
        return ScoreResult(score=0, review_count=0, confidence=Confidence.LOW)

    return ScoreResult(
        score=round_half_up(weighted_sum / total_weight),
        review_count=count,
        confidence=confidence_level(count),
    )


def weighted_average(scores: Iterable[tuple[float, int]]) -> tuple[float, int]:
    """Review-count-weighted mean of (score, review_count) pairs.

    Returns:
        (score rounded to one decimal, total review count)
    """
    weighted = 0.0
    total = 0
    for score, count in scores:
        weighted += score * count
        total += count
    if total == 0:
        return 0.0, 0
    return round_half_up(weighted / total), total


class ScoreComputer:
    """Compute topic and organization scores from stored classifications."""

    def __init__(self, session: Session, now: Optional[datetime] = None):
        """Initialize the score computer.

        Args:
            session: Database session
            now: Reference time for recency weights
        """
        self.session = session
        self.now = now or utcnow()

    def get_reviews_for_topic(self, topic_id: int) -> list[tuple[float, str]]:
        """(stars, date) of dated reviews classified under a subtopic."""
        query = (
            select(Review.stars, Review.date)
            .join(ReviewTopic, ReviewTopic.review_id == Review.id)
            .where(ReviewTopic.topic_id == topic_id, Review.date.is_not(None))
            .order_by(Review.id)
        )
        return [(row.stars, row.date) for row in self.session.execute(query)]

    def compute_subtopic_score(self, topic_id: int, name: str) -> TopicScoreResult:
        result = compute_topic_score(self.get_reviews_for_topic(topic_id), self.now)
        return TopicScoreResult(
            topic_id=topic_id,
            name=name,
            score=result.score,
            review_count=result.review_count,
            confidence=result.confidence,
        )

    def compute_organization_score(
        self, org_id: str, include_subtopics: bool = False
    ) -> OrganizationScore:
        """Overall score of an organization with per-parent-topic breakdown.

        Parent scores are review-count-weighted averages of their subtopics,
        and the overall score is the same average over parents. Topics are
        sorted by descending score.

        Args:
            org_id: Organization to score
            include_subtopics: Attach subtopic scores to each parent

        Returns:
            Organization score
        """
        org = get_organization(self.session, org_id)
        org_name = (org.name if org else None) or org_id

        topics: list[TopicScoreResult] = []
        for parent in get_parent_topics(self.session, org_id):
            subtopic_results = [
                self.compute_subtopic_score(sub.id, sub.name)
                for sub in get_subtopics(self.session, parent.id)
            ]
            parent_score, parent_count = weighted_average(
                (s.score, s.review_count) for s in subtopic_results
            )
            topics.append(
                TopicScoreResult(
                    topic_id=parent.id,
                    name=parent.name,
                    score=parent_score,
                    review_count=parent_count,
                    confidence=confidence_level(parent_count),
                    subtopics=subtopic_results if include_subtopics else None,
                )
            )

        overall_score, total_reviews = weighted_average(
            (t.score, t.review_count) for t in topics
        )
        topics.sort(key=lambda t: t.score, reverse=True)

        return OrganizationScore(
            org_id=org_id,
            name=org_name,
            overall_score=overall_score,
            total_reviews=total_reviews,
            topics=topics,
        )


def compute_organization_score(
    session: Session,
    org_id: str,
    include_subtopics: bool = False,
    now: Optional[datetime] = None,
) -> OrganizationScore:
    """Shortcut for ScoreComputer(session, now).compute_organization_score()."""
    return ScoreComputer(session, now).compute_organization_score(org_id, include_subtopics)


def refresh_stored_scores(session: Session, org_id: str, result: OrganizationScore) -> int:
    """Upsert cached scores of every parent and subtopic in a result.

    Returns:
        Number of rows written
    """
    rows = []
    for topic in result.topics:
        rows.append(topic)
        rows.extend(topic.subtopics or [])

    table = TopicScore.__table__
    computed_at = utcnow()
    with transaction(session):
        for topic in rows:
            stmt = insert_for(session, table).values(
                org_id=org_id,
                topic_id=topic.topic_id,
                score=topic.score,
                review_count=topic.review_count,
                confidence=Confidence(topic.confidence).value,
                computed_at=computed_at,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.org_id, table.c.topic_id],
                set_={
                    "score": stmt.excluded.score,
                    "review_count": stmt.excluded.review_count,
                    "confidence": stmt.excluded.confidence,
                    "computed_at": stmt.excluded.computed_at,
                },
            )
            session.execute(stmt)

    logger.info("Stored %d scores for %s", len(rows), org_id)
    return len(rows)


def get_stored_scores(session: Session, org_id: str) -> list[TopicScore]:
    """Cached scores of an organization, best first."""
    return list(
        session.scalars(
            select(TopicScore)
            .where(TopicScore.org_id == org_id)
            .order_by(TopicScore.score.desc(), TopicScore.topic_id)
            .execution_options(populate_existing=True)
        )
    )


def compare_organizations(
    score_a: OrganizationScore, score_b: OrganizationScore
) -> list[TopicComparison]:
    """Per-parent-topic scores of two organizations matched by topic name.

    A topic missing on one side scores 0 there.
    """
    by_name_a = {t.name: t.score for t in score_a.topics}
    by_name_b = {t.name: t.score for t in score_b.topics}
    names = list(by_name_a) + [n for n in by_name_b if n not in by_name_a]
    return [
        TopicComparison(
            name=name,
            score_a=by_name_a.get(name, 0.0),
            score_b=by_name_b.get(name, 0.0),
            delta=round(by_name_a.get(name, 0.0) - by_name_b.get(name, 0.0), 1),
        )
        for name in names
    ]
