"""SQLAlchemy ORM models for the review tracking database."""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from reviewscope.embeddings.vectors import decode_vector, encode_vector


class Vector(TypeDecorator):
    """Float vector column: packed float32 on SQLite, array literal text on PostgreSQL."""

    impl = LargeBinary
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Text())
        return dialect.type_descriptor(LargeBinary())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return encode_vector(value, dialect.name)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return decode_vector(value, dialect.name)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Organization(Base):
    """A tracked business whose reviews are ingested."""

    __tablename__ = "organization"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(300))
    rating: Mapped[Optional[float]] = mapped_column(Float)
    review_count: Mapped[Optional[int]] = mapped_column(Integer)
    address: Mapped[Optional[str]] = mapped_column(Text)
    categories: Mapped[Optional[list]] = mapped_column(JSON(none_as_null=True))
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="tracked"
    )  # mine, competitor, tracked
    service_type: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    reviews: Mapped[list["Review"]] = relationship(
        back_populates="organization", passive_deletes=True
    )
    topics: Mapped[list["Topic"]] = relationship(
        back_populates="organization", passive_deletes=True
    )


class CompetitorLink(Base):
    """Directed competitor relation between two tracked organizations."""

    __tablename__ = "competitor_link"
    __table_args__ = (UniqueConstraint("org_id", "competitor_org_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("organization.org_id", ondelete="CASCADE"), nullable=False
    )
    competitor_org_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("organization.org_id", ondelete="CASCADE"), nullable=False
    )
    priority: Mapped[Optional[int]] = mapped_column(Integer)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Review(Base):
    """One customer review, deduplicated by review_key."""

    __tablename__ = "review"
    __table_args__ = (
        Index("ix_review_org_id", "org_id"),
        Index("ix_review_date", "date"),
        Index("ix_review_stars", "stars"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("organization.org_id", ondelete="CASCADE"), nullable=False
    )
    review_key: Mapped[str] = mapped_column(String(500), unique=True, nullable=False)

    # Author
    author_name: Mapped[Optional[str]] = mapped_column(String(300))
    author_icon_url: Mapped[Optional[str]] = mapped_column(String(1000))
    author_profile_url: Mapped[Optional[str]] = mapped_column(String(1000))

    # Content
    date: Mapped[Optional[str]] = mapped_column(String(40))  # ISO date
    text: Mapped[Optional[str]] = mapped_column(Text)
    stars: Mapped[float] = mapped_column(Float, nullable=False)  # 1-5, half steps
    likes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    dislikes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    review_url: Mapped[Optional[str]] = mapped_column(String(1000))
    business_response: Mapped[Optional[str]] = mapped_column(Text)

    # Timestamps
    first_seen_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    # Relationships
    organization: Mapped["Organization"] = relationship(back_populates="reviews")
    embedding: Mapped[Optional["ReviewEmbedding"]] = relationship(
        back_populates="review", passive_deletes=True
    )


class ReviewEmbedding(Base):
    """Text embedding of a review (at most one per review)."""

    __tablename__ = "review_embedding"

    review_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("review.id", ondelete="CASCADE"), primary_key=True
    )
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    text_embedding: Mapped[list[float]] = mapped_column(Vector, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    # Relationships
    review: Mapped["Review"] = relationship(back_populates="embedding")


class Topic(Base):
    """Parent topic (parent_id is NULL) or subtopic of an organization's taxonomy."""

    __tablename__ = "topic"
    __table_args__ = (Index("ix_topic_org_id", "org_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("organization.org_id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("topic.id", ondelete="CASCADE")
    )
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    embedding: Mapped[Optional[list[float]]] = mapped_column(Vector)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    # Relationships
    organization: Mapped["Organization"] = relationship(back_populates="topics")


class ReviewTopic(Base):
    """Classification edge between a review and a subtopic."""

    __tablename__ = "review_topic"
    __table_args__ = (
        UniqueConstraint("review_id", "topic_id"),
        Index("ix_review_topic_topic_id", "topic_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    review_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("review.id", ondelete="CASCADE"), nullable=False
    )
    topic_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("topic.id", ondelete="CASCADE"), nullable=False
    )
    similarity: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class TopicScore(Base):
    """Cached score per organization and topic."""

    __tablename__ = "topic_score"
    __table_args__ = (UniqueConstraint("org_id", "topic_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("organization.org_id", ondelete="CASCADE"), nullable=False
    )
    topic_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("topic.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[float] = mapped_column(Float, nullable=False)  # 0-10
    review_count: Mapped[int] = mapped_column(Integer, nullable=False)
    confidence: Mapped[str] = mapped_column(String(10), nullable=False)  # low, medium, high
    computed_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class SyncLogEntry(Base):
    """Append-only audit record of one sync attempt."""

    __tablename__ = "sync_log"
    __table_args__ = (Index("ix_sync_log_org_id_id", "org_id", "id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("organization.org_id", ondelete="CASCADE"), nullable=False
    )
    sync_type: Mapped[str] = mapped_column(String(20), nullable=False)  # full, incremental
    reviews_added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reviews_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    status: Mapped[str] = mapped_column(String(10), nullable=False)  # ok, error
    error_message: Mapped[Optional[str]] = mapped_column(Text)
