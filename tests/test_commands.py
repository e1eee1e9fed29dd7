from gigmarket.extensions import db
from gigmarket.models.gig import Gig
from gigmarket.services import order_lifecycle as lifecycle, review_service
from gigmarket.utils.auth_utils import Actor
from tests.conftest import T0


def test_ratings_rebuild(app, gig, buyer, make_completed_order, as_admin):
    order = make_completed_order(buyer, gig)
    review = review_service.create_review(order.id, Actor(buyer.id, "buyer"), {"overall": 4, "comment": "Nice"})
    review_service.publish_review(review.id, as_admin)
    gig_id = gig.id
    gig.rating, gig.total_reviews = 0.0, 0
    # release the shared connection before the command opens its own session
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["ratings", "rebuild"])

    assert result.exit_code == 0
    assert "Rebuilt ratings for 1 gig(s)" in result.output
    db.session.expire_all()
    stored = db.session.get(Gig, gig_id)
    assert (stored.rating, stored.total_reviews) == (4.0, 1)


def test_orders_overdue(app, order, as_seller):
    order_id = order.id
    lifecycle.accept_order(order_id, as_seller, now=T0)
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["orders", "overdue"])

    assert result.exit_code == 0
    assert order_id in result.output
    assert "due 2024-01-04T00:00:00Z" in result.output
    assert "1 overdue order(s)." in result.output
