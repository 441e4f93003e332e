import pytest
from sqlalchemy import func, select

from reviewscope.data.embeddings import (
    get_embeddable_reviews,
    get_review_embedding,
    get_unembedded_reviews,
    save_review_embedding,
)
from reviewscope.data.models import Review
from reviewscope.data.reviews import (
    get_review_stats,
    get_review_trends,
    get_unanswered_reviews,
    query_reviews,
    review_key,
    search_reviews,
    semantic_search_reviews,
    upsert_reviews,
)
from reviewscope.data.schemas import RawReview


def make_review(n, **kwargs):
    fields = {
        "stars": 4,
        "review_url": f"https://example.com/r/{n}",
        "date": f"2025-01-{n:02d}",
        "text": f"Review number {n}",
    }
    fields.update(kwargs)
    return RawReview(**fields)


def stored(session, key):
    return session.scalars(
        select(Review).where(Review.review_key == key).execution_options(populate_existing=True)
    ).one()


def test_upsert_is_idempotent(session, org_id):
    batch = [make_review(1), make_review(2)]

    first = upsert_reviews(session, org_id, batch)
    second = upsert_reviews(session, org_id, batch)

    assert (first.added, first.updated) == (2, 0)
    assert (second.added, second.updated) == (0, 2)
    assert session.scalar(select(func.count()).select_from(Review)) == 2


def test_update_overwrites_mutable_fields_only(session, org_id):
    upsert_reviews(session, org_id, [make_review(1, likes=0)])
    before = stored(session, "https://example.com/r/1")
    first_seen = before.first_seen_at
    review_id = before.id

    upsert_reviews(
        session,
        org_id,
        [
            make_review(
                1,
                stars=2,
                text="Edited text",
                likes=3,
                dislikes=1,
                business_response="Thanks",
                author_name="Changed Author",
            )
        ],
    )

    after = stored(session, "https://example.com/r/1")
    assert after.id == review_id
    assert after.first_seen_at == first_seen
    assert after.stars == 2
    assert after.text == "Edited text"
    assert (after.likes, after.dislikes) == (3, 1)
    assert after.business_response == "Thanks"
    assert after.author_name is None
    assert after.org_id == org_id


def test_duplicate_in_batch_counts_as_update(session, org_id):
    result = upsert_reviews(
        session, org_id, [make_review(1), make_review(1, text="Second copy")]
    )
    assert (result.added, result.updated) == (1, 1)
    assert stored(session, "https://example.com/r/1").text == "Second copy"


def test_anonymous_reviews_use_hash_key(session, org_id):
    review = RawReview(stars=3, date="2025-02-01", text="No link here")
    upsert_reviews(session, org_id, [review])
    assert stored(session, review_key(org_id, review)).text == "No link here"


def test_query_filters(session, org_id):
    upsert_reviews(
        session,
        org_id,
        [make_review(1, stars=1), make_review(2, stars=3), make_review(3, stars=5)],
    )

    assert [r.stars for r in query_reviews(session, org_id)] == [5, 3, 1]
    assert [r.stars for r in query_reviews(session, org_id, since="2025-01-02")] == [5, 3]
    assert [r.stars for r in query_reviews(session, org_id, stars_min=2, stars_max=4)] == [3]
    assert len(query_reviews(session, org_id, limit=1)) == 1


def test_unanswered_reviews(session, org_id):
    upsert_reviews(
        session,
        org_id,
        [
            make_review(1, stars=1),
            make_review(2, stars=2, business_response="We are sorry"),
            make_review(3, stars=5),
            make_review(4, stars=1, text=None),
        ],
    )
    assert [r.review_url for r in get_unanswered_reviews(session, org_id)] == [
        "https://example.com/r/3",
        "https://example.com/r/1",
    ]
    assert len(get_unanswered_reviews(session, org_id, stars_max=2)) == 1


def test_search_is_case_insensitive_substring(session, org_id):
    upsert_reviews(
        session,
        org_id,
        [
            make_review(1, text="Brake pads replaced quickly"),
            make_review(2, text="Oil change took 100% too long"),
            make_review(3, text="Friendly staff"),
        ],
    )
    assert [r.text for r in search_reviews(session, "BRAKE")] == ["Brake pads replaced quickly"]
    assert [r.text for r in search_reviews(session, "100%")] == ["Oil change took 100% too long"]
    assert search_reviews(session, "brake", org_id="other") == []


def test_review_stats(session, org_id):
    upsert_reviews(
        session,
        org_id,
        [
            make_review(1, stars=5, business_response="Thanks"),
            make_review(2, stars=4),
            make_review(3, stars=1, text=""),
            make_review(4, stars=4.5),
        ],
    )
    stats = get_review_stats(session, org_id)

    assert stats.name == "Downtown Auto"
    assert stats.total_reviews == 4
    assert stats.star_distribution == {"1": 1, "2": 0, "3": 0, "4": 1, "5": 2}
    assert stats.avg_stars == 3.62
    assert stats.response_rate == 0.25
    assert stats.reviews_with_text == 3
    assert (stats.first_date, stats.last_date) == ("2025-01-01", "2025-01-04")


def test_review_stats_empty(session, org_id):
    stats = get_review_stats(session, org_id)
    assert stats.total_reviews == 0
    assert stats.avg_stars == 0
    assert stats.response_rate == 0.0


def test_review_trends(session, org_id):
    upsert_reviews(
        session,
        org_id,
        [
            make_review(1, stars=5, date="2025-01-06"),
            make_review(2, stars=4, date="2025-01-20"),
            make_review(3, stars=3, date="2025-02-03"),
            make_review(4, stars=2, date="2025-04-10"),
            make_review(5, stars=1, date=None),
            make_review(6, stars=1, date="15 March 2024"),
        ],
    )

    def summary(rows):
        return [(r.period, r.count, r.avg_stars) for r in rows]

    assert summary(get_review_trends(session, org_id)) == [
        ("2025-04", 1, 2.0),
        ("2025-02", 1, 3.0),
        ("2025-01", 2, 4.5),
    ]
    assert summary(get_review_trends(session, org_id, group_by="quarter")) == [
        ("2025-Q2", 1, 2.0),
        ("2025-Q1", 3, 4.0),
    ]
    assert [r.period for r in get_review_trends(session, org_id, group_by="week")] == [
        "2025-W14",
        "2025-W05",
        "2025-W03",
        "2025-W01",
    ]
    assert summary(get_review_trends(session, org_id, since="2025-01-15", limit=2)) == [
        ("2025-04", 1, 2.0),
        ("2025-02", 1, 3.0),
    ]


def test_review_trends_rejects_unknown_period(session, org_id):
    with pytest.raises(ValueError):
        get_review_trends(session, org_id, group_by="year")


def test_embedding_storage(session, org_id):
    upsert_reviews(session, org_id, [make_review(1), make_review(2), make_review(3, text="")])
    ids = [r.id for r in query_reviews(session, org_id)][::-1]

    assert [rid for rid, _ in get_unembedded_reviews(session, org_id)] == ids[:2]

    save_review_embedding(session, ids[0], "model-a", [0.5, 0.25])
    assert [rid for rid, _ in get_unembedded_reviews(session, org_id)] == [ids[1]]
    assert [rid for rid, _ in get_embeddable_reviews(session, org_id)] == ids[:2]

    # Saving again replaces the single stored embedding
    save_review_embedding(session, ids[0], "model-b", [1.0, -2.0])
    embedding = get_review_embedding(session, ids[0])
    assert embedding.model == "model-b"
    assert embedding.text_embedding == [1.0, -2.0]


def test_semantic_search_orders_by_similarity(session, org_id):
    upsert_reviews(session, org_id, [make_review(1), make_review(2), make_review(3)])
    ids = [r.id for r in query_reviews(session, org_id)][::-1]
    save_review_embedding(session, ids[0], "m", [1.0, 0.0])
    save_review_embedding(session, ids[1], "m", [0.0, 1.0])
    save_review_embedding(session, ids[2], "m", [1.0, 1.0])

    results = semantic_search_reviews(session, [1.0, 0.0], org_id=org_id, limit=2)
    assert [review.id for review, _ in results] == [ids[0], ids[2]]
    assert results[0][1] == 1.0
