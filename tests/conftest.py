from datetime import datetime
from decimal import Decimal
import pytest
from gigmarket.main import create_app
from gigmarket.extensions import db
from gigmarket.models.user import User
from gigmarket.models.gig import Gig
from gigmarket.models.order import Order
from gigmarket.services import order_lifecycle
from gigmarket.services.order_service import create_order
from gigmarket.utils.auth_utils import Actor

T0 = datetime(2024, 1, 1, 0, 0, 0)

PACKAGES = {
    "basic": {
        "title": "Quick review",
        "description": "One short video",
        "price": 100,
        "delivery_time": 3,
        "revisions": 1,
        "features": ["1 video"],
    },
    "standard": {
        "title": "Full review",
        "description": "Video and write-up",
        "price": 250,
        "delivery_time": 5,
        "revisions": 2,
        "features": ["1 video", "blog post"],
    },
    "premium": {
        "title": "Campaign",
        "description": "Three videos",
        "price": 600,
        "delivery_time": 10,
        "revisions": 0,
        "features": ["3 videos"],
    },
}


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(role="buyer", **kwargs):
        counter["n"] += 1
        user = User(
            email=kwargs.pop("email", f"{role}{counter['n']}@example.com"),
            full_name=kwargs.pop("full_name", f"{role.title()} {counter['n']}"),
            role=role,
            **kwargs,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_gig(app):
    def _make(seller, packages=None, **kwargs):
        gig = Gig(
            seller_id=seller.id,
            title=kwargs.pop("title", "Tech review video"),
            packages=packages or PACKAGES,
            **kwargs,
        )
        db.session.add(gig)
        db.session.commit()
        return gig

    return _make


@pytest.fixture
def buyer(make_user):
    return make_user("buyer")


@pytest.fixture
def seller(make_user):
    return make_user("seller")


@pytest.fixture
def gig(make_gig, seller):
    return make_gig(seller)


@pytest.fixture
def as_buyer(buyer):
    return Actor(user_id=buyer.id, role="buyer")


@pytest.fixture
def as_seller(seller):
    return Actor(user_id=seller.id, role="seller")


@pytest.fixture
def as_admin(make_user):
    admin = make_user("admin")
    return Actor(user_id=admin.id, role="admin")


@pytest.fixture
def order(gig, as_buyer):
    return create_order(as_buyer, {"gig_id": gig.id, "package": "basic"}, now=T0)


@pytest.fixture
def make_completed_order(app):
    """Insert a completed order directly, skipping the lifecycle."""
    def _make(buyer, gig, package="basic"):
        price = Decimal(str(gig.packages[package]["price"]))
        order = Order(
            buyer_id=buyer.id,
            seller_id=gig.seller_id,
            gig_id=gig.id,
            gig_title=gig.title,
            package=package,
            package_details=dict(gig.packages[package]),
            subtotal=price,
            total=price,
            status="completed",
            completed_at=T0,
        )
        db.session.add(order)
        db.session.commit()
        return order

    return _make


@pytest.fixture
def deliver(as_seller):
    def _deliver(order_id, now=T0):
        return order_lifecycle.deliver_order(
            order_id, as_seller, [{"type": "link", "content": "https://example.com/final.mp4"}], now=now
        )

    return _deliver
