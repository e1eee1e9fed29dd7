import logging
import pytest
from sqlalchemy.exc import OperationalError
from gigmarket.extensions import db
from gigmarket.services import rating_service, review_service
from gigmarket.utils.auth_utils import Actor
from gigmarket.utils.exceptions import NotFound, PersistenceUnavailable


@pytest.fixture
def add_review(make_completed_order, make_user, as_admin):
    def _add(gig, rating, publish=True):
        buyer = make_user("buyer")
        order = make_completed_order(buyer, gig)
        review = review_service.create_review(
            order.id, Actor(buyer.id, "buyer"), {"overall": rating, "comment": f"{rating} stars"}
        )
        if publish:
            review_service.publish_review(review.id, as_admin)
        return review

    return _add


@pytest.mark.parametrize("ratings, expected", [
    ([], 0.0),
    ([5], 5.0),
    ([5, 3], 4.0),
    ([5, 4], 4.5),
    ([5, 4, 4], 4.3),
    ([1, 2, 2, 2], 1.8),
    # 4.25 rounds half up
    ([5, 5, 4, 3], 4.3),
])
def test_mean_rating(ratings, expected):
    assert rating_service.mean_rating(ratings) == expected


def test_unpublished_reviews_do_not_count(gig, add_review):
    add_review(gig, 1, publish=False)

    rating_service.recompute_gig_rating(gig.id)

    assert gig.rating == 0.0
    assert gig.total_reviews == 0


def test_recompute_is_idempotent(gig, seller, add_review):
    add_review(gig, 5)
    add_review(gig, 4)
    add_review(gig, 4)

    first = rating_service.recompute_gig_rating(gig.id)
    snapshot = (first.rating, first.total_reviews)
    second = rating_service.recompute_gig_rating(gig.id)

    assert (second.rating, second.total_reviews) == snapshot == (4.3, 3)
    assert (seller.seller_rating, seller.seller_total_reviews) == (4.3, 3)


def test_recompute_repairs_drifted_cache(gig, add_review):
    add_review(gig, 5)
    gig.rating = 1.2
    gig.total_reviews = 40
    db.session.commit()

    rating_service.recompute_gig_rating(gig.id)

    assert (gig.rating, gig.total_reviews) == (5.0, 1)


def test_seller_rating_spans_all_gigs(make_gig, seller, add_review):
    first, second = make_gig(seller), make_gig(seller, title="Unboxing")
    add_review(first, 5)
    add_review(second, 2)

    rating_service.recompute_seller_rating(seller.id)

    assert seller.seller_rating == 3.5
    assert seller.seller_total_reviews == 2
    assert (first.rating, second.rating) == (5.0, 2.0)


def test_unknown_targets(app):
    with pytest.raises(NotFound):
        rating_service.recompute_gig_rating("gig-missing")
    with pytest.raises(NotFound):
        rating_service.recompute_seller_rating("usr-missing")


def test_database_errors_become_persistence_unavailable(gig, monkeypatch):
    def broken(*criteria):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(rating_service, "_published_ratings", broken)

    with pytest.raises(PersistenceUnavailable) as exc:
        rating_service.recompute_gig_rating(gig.id)
    assert exc.value.details == {"gig_id": gig.id}


def test_failed_refresh_does_not_undo_publish(gig, add_review, as_admin, monkeypatch, caplog):
    review = add_review(gig, 4, publish=False)

    def unavailable(gig_id):
        raise PersistenceUnavailable("Could not recompute gig rating", {"gig_id": gig_id})

    monkeypatch.setattr(rating_service, "recompute_gig_rating", unavailable)

    with caplog.at_level(logging.ERROR):
        review_service.publish_review(review.id, as_admin)

    assert review.status == "published"
    assert gig.total_reviews == 0
    assert "RATING_REFRESH_FAILED" in caplog.text
    # the seller side still went through
    assert gig.seller.seller_total_reviews == 1


def test_rebuild_all_ratings(make_gig, seller, add_review):
    gig = make_gig(seller)
    add_review(gig, 3)
    add_review(gig, 5)
    gig.rating, gig.total_reviews = 0.0, 0
    seller.seller_rating, seller.seller_total_reviews = 0.0, 0
    db.session.commit()

    result = rating_service.rebuild_all_ratings()

    assert result["failed"] == []
    assert result["gigs"] == 1
    assert (gig.rating, gig.total_reviews) == (4.0, 2)
    assert (seller.seller_rating, seller.seller_total_reviews) == (4.0, 2)


def test_gig_rating_stats(gig, add_review):
    for rating in (5, 5, 4, 1):
        add_review(gig, rating)
    add_review(gig, 2, publish=False)

    stats = rating_service.gig_rating_stats(gig.id)

    assert stats == {
        "average_rating": 3.8,
        "total_reviews": 4,
        "breakdown": {1: 1, 2: 0, 3: 0, 4: 1, 5: 2},
    }


def test_scenario_publish_and_hide_updates_gig(gig, seller, add_review, as_admin):
    add_review(gig, 5)
    three = add_review(gig, 3)
    assert (gig.rating, gig.total_reviews) == (4.0, 2)

    add_review(gig, 4)
    assert (gig.rating, gig.total_reviews) == (4.0, 3)

    review_service.hide_review(three.id, as_admin)
    assert (gig.rating, gig.total_reviews) == (4.5, 2)
    assert (seller.seller_rating, seller.seller_total_reviews) == (4.5, 2)


def test_flagging_a_published_review_drops_it_from_the_rating(gig, add_review, make_user):
    add_review(gig, 5)
    bad = add_review(gig, 1)
    assert gig.rating == 3.0

    for _ in range(3):
        review_service.flag_review(bad.id, make_user("buyer").id, "fake")

    assert (gig.rating, gig.total_reviews) == (5.0, 1)
