"""Pydantic schemas for data validation and pipeline contracts."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# Enums for constrained values
class Role(str, Enum):
    MINE = "mine"
    COMPETITOR = "competitor"
    TRACKED = "tracked"


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncStatus(str, Enum):
    OK = "ok"
    ERROR = "error"


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Fetched data (before identity key derivation)
class RawReview(BaseModel):
    """Schema for a review as returned by the page fetcher."""

    author_name: Optional[str] = None
    author_icon_url: Optional[str] = None
    author_profile_url: Optional[str] = None
    date: Optional[str] = None  # ISO date
    text: Optional[str] = None
    stars: float = Field(ge=1, le=5)
    likes: int = Field(default=0, ge=0)
    dislikes: int = Field(default=0, ge=0)
    review_url: Optional[str] = None
    business_response: Optional[str] = None


class OrganizationInfo(BaseModel):
    """Organization metadata as observed on the source page."""

    name: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    address: Optional[str] = None
    categories: list[str] = []


class FetchResult(BaseModel):
    """Structured result of fetching one organization's page."""

    organization: OrganizationInfo
    reviews: list[RawReview] = []
    total_count: int = 0


# Ingestion
class UpsertResult(BaseModel):
    """Counts returned by a batch upsert."""

    added: int = 0
    updated: int = 0


class SyncLogInput(BaseModel):
    """One sync attempt to be written to the ledger."""

    org_id: str
    sync_type: SyncMode
    reviews_added: int = 0
    reviews_updated: int = 0
    started_at: datetime
    finished_at: Optional[datetime] = None
    status: SyncStatus
    error_message: Optional[str] = None


class SyncOutcome(BaseModel):
    """Per-organization result of a sync run."""

    org_id: str
    name: Optional[str] = None
    sync_type: SyncMode
    status: SyncStatus
    reviews_fetched: int = 0
    reviews_added: int = 0
    reviews_updated: int = 0
    error: Optional[str] = None


# Classification
class TopicCandidate(BaseModel):
    """Subtopic eligible for classification."""

    id: int
    name: str
    embedding: list[float]


class TopicMatch(BaseModel):
    """Subtopic matched to a review."""

    topic_id: int
    name: str
    similarity: float


# Scoring
class ScoreResult(BaseModel):
    """Aggregate score of one set of reviews."""

    score: float
    review_count: int
    confidence: Confidence


class TopicScoreResult(BaseModel):
    """Score of a parent topic or subtopic."""

    topic_id: int
    name: str
    score: float
    review_count: int
    confidence: Confidence
    subtopics: Optional[list["TopicScoreResult"]] = None


class OrganizationScore(BaseModel):
    """Overall score of an organization broken down by parent topic."""

    org_id: str
    name: str
    overall_score: float
    total_reviews: int
    topics: list[TopicScoreResult] = []


class TopicComparison(BaseModel):
    """Score of one parent topic for two organizations."""

    name: str
    score_a: float
    score_b: float
    delta: float


class ReviewStats(BaseModel):
    """Summary statistics of an organization's stored reviews."""

    org_id: str
    name: Optional[str] = None
    rating: Optional[float] = None
    total_reviews: int
    star_distribution: dict[str, int]
    avg_stars: float
    response_rate: float
    reviews_with_text: int
    first_date: Optional[str] = None
    last_date: Optional[str] = None


class TrendRow(BaseModel):
    """Review volume and average stars of one period."""

    period: str  # 2025-03, 2025-W09 or 2025-Q1
    count: int
    avg_stars: float


class EmbedOutcome(BaseModel):
    """Per-organization result of an embedding run."""

    org_id: str
    reviews_embedded: int = 0
    topics_embedded: int = 0
    error: Optional[str] = None


class PipelineOutcome(BaseModel):
    """Everything one pipeline run did for one organization."""

    org_id: str
    sync: Optional[SyncOutcome] = None
    embed: Optional[EmbedOutcome] = None
    reviews_classified: Optional[int] = None
    score: Optional[OrganizationScore] = None
