from decimal import Decimal, ROUND_HALF_UP
from flask import current_app
from marshmallow import ValidationError
from sqlalchemy import or_
from gigmarket.extensions import db
from gigmarket.models.gig import Gig
from gigmarket.models.order import Order, ACTIVE_STATUSES
from gigmarket.schemas.order_schema import order_create_schema
from gigmarket.utils.clock import as_utc
from gigmarket.utils.exceptions import Forbidden, NotFound, ValidationFailed, InvalidTransition
from gigmarket.utils.pagination import paginate_query

CENTS = Decimal("0.01")

SNAPSHOT_FIELDS = ("title", "description", "features", "delivery_time", "revisions")


def to_money(value):
    if value is None:
        return None
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def snapshot_package(package):
    details = {k: package.get(k) for k in SNAPSHOT_FIELDS}
    details["features"] = list(details["features"] or [])
    details["revisions"] = int(details["revisions"] or 0)
    return details


def create_order(actor, data, now=None):
    try:
        payload = order_create_schema.load(data or {})
    except ValidationError as e:
        raise ValidationFailed("Invalid order data", {"fields": e.messages})

    if actor.role != "buyer":
        raise Forbidden("Only buyers can place orders")

    gig = db.session.get(Gig, payload["gig_id"])
    if not gig:
        raise NotFound("Gig not found", {"gig_id": payload["gig_id"]})
    if gig.status != "active":
        raise InvalidTransition("Gig is not available for ordering", {"gig_id": gig.id, "status": gig.status})
    if gig.seller_id == actor.user_id:
        raise Forbidden("Sellers cannot order their own gig")

    package = gig.get_package(payload["package"])
    if not package:
        raise NotFound("Package not found", {"gig_id": gig.id, "package": payload["package"]})

    subtotal = to_money(package["price"])
    now = as_utc(now)

    order = Order(
        buyer_id=actor.user_id,
        seller_id=gig.seller_id,
        gig_id=gig.id,
        gig_title=gig.title,
        package=payload["package"],
        package_details=snapshot_package(package),
        subtotal=subtotal,
        total=subtotal,
        currency=current_app.config.get("DEFAULT_CURRENCY", "USD"),
        status="pending",
        requirements=payload["requirements"],
        ordered_at=now,
        created_at=now,
    )

    db.session.add(order)
    db.session.commit()

    current_app.logger.info(f"[ORDER_CREATE] {order.id} gig={gig.id} package={order.package} buyer={actor.user_id}")
    return order


def get_order(order_id, actor=None):
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFound("Order not found", {"order_id": order_id})

    if actor and not (actor.is_admin or actor.is_system) and actor.user_id not in (order.buyer_id, order.seller_id):
        raise Forbidden("You are not a party to this order", {"order_id": order_id})

    return order


def list_orders(actor, perspective=None, status=None, page=1, limit=10):
    q = Order.query

    if perspective == "buying":
        q = q.filter(Order.buyer_id == actor.user_id)
    elif perspective == "selling":
        q = q.filter(Order.seller_id == actor.user_id)
    else:
        q = q.filter(or_(Order.buyer_id == actor.user_id, Order.seller_id == actor.user_id))

    if status:
        q = q.filter(Order.status == status)

    return paginate_query(q.order_by(Order.created_at.desc()), page, limit)


def find_active_orders():
    return Order.query.filter(Order.status.in_(ACTIVE_STATUSES)).all()


def find_overdue_orders(now=None):
    return (
        Order.query
        .filter(
            Order.due_date < as_utc(now),
            Order.status.in_(["accepted", "in_progress", "revision_requested"])
        )
        .order_by(Order.due_date)
        .all()
    )
