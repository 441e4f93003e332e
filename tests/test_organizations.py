import pytest
from sqlalchemy import func, select

from reviewscope.config.taxonomy import TopicConfig
from reviewscope.data.database import transaction, utcnow
from reviewscope.data.embeddings import save_review_embedding
from reviewscope.data.models import (
    CompetitorLink,
    Organization,
    Review,
    ReviewEmbedding,
    ReviewTopic,
    SyncLogEntry,
    Topic,
    TopicScore,
)
from reviewscope.data.organizations import (
    add_competitor,
    get_competitors,
    get_organization,
    list_organizations,
    remove_competitor,
    remove_organization,
    require_organization,
    upsert_organization,
)
from reviewscope.data.reviews import upsert_reviews
from reviewscope.data.schemas import (
    OrganizationInfo,
    RawReview,
    Role,
    SyncLogInput,
    SyncMode,
    SyncStatus,
)
from reviewscope.data.sync_log import log_sync
from reviewscope.data.topics import get_parent_topics, get_subtopics, replace_topics
from reviewscope.exceptions import UnknownOrganizationError


def count(session, model):
    return session.scalar(select(func.count()).select_from(model))


def test_new_organization_defaults(session):
    upsert_organization(session, "org-9")
    org = get_organization(session, "org-9")
    assert org.role == "tracked"
    assert org.name is None
    assert org.categories is None


def test_merge_keeps_existing_values(session):
    upsert_organization(
        session,
        "org-1",
        OrganizationInfo(
            name="Downtown Auto",
            rating=4.5,
            review_count=120,
            address="1 Main St",
            categories=["Car repair"],
        ),
        role=Role.MINE,
    )
    upsert_organization(session, "org-1", OrganizationInfo(rating=4.6))

    org = get_organization(session, "org-1")
    assert org.name == "Downtown Auto"
    assert org.rating == 4.6
    assert org.review_count == 120
    assert org.address == "1 Main St"
    assert org.categories == ["Car repair"]
    assert org.role == "mine"


def test_role_changes_only_when_given(session):
    upsert_organization(session, "org-1", role=Role.COMPETITOR)
    upsert_organization(session, "org-1", OrganizationInfo(name="X"))
    assert get_organization(session, "org-1").role == "competitor"

    upsert_organization(session, "org-1", role=Role.MINE)
    assert get_organization(session, "org-1").role == "mine"


def test_require_unknown_organization(session):
    with pytest.raises(UnknownOrganizationError, match="org-404"):
        require_organization(session, "org-404")


def test_list_by_role(session):
    upsert_organization(session, "a", OrganizationInfo(name="A"), role=Role.MINE)
    upsert_organization(session, "b", OrganizationInfo(name="B"), role=Role.COMPETITOR)
    upsert_organization(session, "c", OrganizationInfo(name="C"))

    assert [o.org_id for o in list_organizations(session)] == ["a", "b", "c"]
    assert [o.org_id for o in list_organizations(session, role=Role.COMPETITOR)] == ["b"]


def test_competitors(session):
    for org_id, name in [("me", "Me"), ("x", "Xavier"), ("y", "Yard"), ("z", "Zed")]:
        upsert_organization(session, org_id, OrganizationInfo(name=name))

    add_competitor(session, "me", "z", priority=1)
    add_competitor(session, "me", "x")
    add_competitor(session, "me", "y", priority=2)
    assert [o.org_id for o in get_competitors(session, "me")] == ["z", "y", "x"]

    # Re-adding updates the link instead of duplicating it
    add_competitor(session, "me", "x", priority=0, notes="closest")
    assert [o.org_id for o in get_competitors(session, "me")] == ["x", "z", "y"]
    assert count(session, CompetitorLink) == 3

    remove_competitor(session, "me", "z")
    assert [o.org_id for o in get_competitors(session, "me")] == ["x", "y"]


def test_competitor_must_be_tracked(session, org_id):
    with pytest.raises(UnknownOrganizationError):
        add_competitor(session, org_id, "nobody")
    assert count(session, CompetitorLink) == 0


def test_remove_cascades_to_dependents(session, org_id):
    upsert_organization(session, "rival")
    add_competitor(session, org_id, "rival")
    add_competitor(session, "rival", org_id)
    replace_topics(session, org_id, [TopicConfig(name="Service", subtopics=["Speed"])])
    upsert_reviews(
        session,
        org_id,
        [RawReview(stars=4, review_url="https://example.com/r/1", text="Fast")],
    )
    review_id = session.scalar(select(Review.id))
    save_review_embedding(session, review_id, "m", [1.0, 0.0])
    parent = get_parent_topics(session, org_id)[0]
    sub = get_subtopics(session, parent.id)[0]
    with transaction(session):
        session.add(ReviewTopic(review_id=review_id, topic_id=sub.id, similarity=0.9))
        session.add(
            TopicScore(
                org_id=org_id, topic_id=sub.id, score=8.0, review_count=1, confidence="low"
            )
        )
    log_sync(
        session,
        SyncLogInput(
            org_id=org_id,
            sync_type=SyncMode.FULL,
            reviews_added=1,
            started_at=utcnow(),
            status=SyncStatus.OK,
        ),
    )

    assert remove_organization(session, org_id) is True

    assert get_organization(session, org_id) is None
    assert count(session, Organization) == 1
    for model in (CompetitorLink, Review, ReviewEmbedding, Topic, ReviewTopic, TopicScore, SyncLogEntry):
        assert count(session, model) == 0, model.__tablename__


def test_remove_unknown_returns_false(session):
    assert remove_organization(session, "ghost") is False
