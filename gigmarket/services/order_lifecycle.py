"""
Order state machine.

Every operation re-reads the order under a row lock, checks the caller's
party against PERMITTED_PARTIES, looks the move up in TRANSITIONS and only
then mutates. Terminal orders reject every move before any
operation-specific check. All field changes of one operation go out in a
single commit; a rejected operation rolls back without touching the order.
"""
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from flask import current_app
from marshmallow import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from gigmarket.extensions import db
from gigmarket.models.order import Order, ORDER_STATUSES
from gigmarket.schemas.order_schema import deliverables_schema
from gigmarket.utils.clock import as_utc
from gigmarket.utils.exceptions import (
    Forbidden,
    InvalidTransition,
    NotFound,
    PersistenceUnavailable,
    RevisionLimitExceeded,
    ServiceError,
    ValidationFailed,
)

CENTS = Decimal("0.01")

TERMINAL_STATUSES = frozenset({"completed", "cancelled", "refunded", "disputed"})
OPEN_STATUSES = tuple(s for s in ORDER_STATUSES if s not in TERMINAL_STATUSES)
RESOLUTION_OUTCOMES = ("completed", "cancelled", "refunded")

# (current status, operation) -> next status
TRANSITIONS = {
    ("pending", "accept"): "accepted",
    ("accepted", "start"): "in_progress",
    ("accepted", "deliver"): "delivered",
    ("in_progress", "deliver"): "delivered",
    ("revision_requested", "deliver"): "revision_delivered",
    ("delivered", "request_revision"): "revision_requested",
    ("delivered", "complete"): "completed",
    ("revision_delivered", "complete"): "completed",
    ("pending", "cancel"): "cancelled",
    ("accepted", "cancel"): "cancelled",
    ("in_progress", "cancel"): "cancelled",
    # outcome chosen by the resolving admin
    ("disputed", "resolve"): RESOLUTION_OUTCOMES,
}
TRANSITIONS.update({(status, "dispute"): "disputed" for status in OPEN_STATUSES})

PERMITTED_PARTIES = {
    "accept": {"seller"},
    "start": {"seller"},
    "deliver": {"seller"},
    "request_revision": {"buyer"},
    "complete": {"buyer", "system"},
    "cancel": {"buyer", "seller", "admin"},
    "dispute": {"buyer", "seller", "admin"},
    "resolve": {"admin"},
}


def party_of(order, actor):
    if actor.is_system:
        return "system"
    if actor.is_admin:
        return "admin"
    if actor.user_id and actor.user_id == order.seller_id:
        return "seller"
    if actor.user_id and actor.user_id == order.buyer_id:
        return "buyer"
    return None


def allowed_operations(order, actor):
    """Operations the actor could run against the order right now."""
    party = party_of(order, actor)
    return sorted(
        op for (status, op) in TRANSITIONS
        if status == order.status and party in PERMITTED_PARTIES[op]
    )


def _rejected(exc):
    # release the row lock and drop anything staged in this transaction
    db.session.rollback()
    return exc


def lock_order(order_id):
    order = (
        Order.query
        .filter_by(id=order_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not order:
        raise _rejected(NotFound("Order not found", {"order_id": order_id}))
    return order


def _invalid(order, operation):
    return _rejected(InvalidTransition(
        f"Cannot {operation.replace('_', ' ')} an order that is {order.status}",
        {"order_id": order.id, "status": order.status, "operation": operation},
    ))


def _begin(order_id, actor, operation, precheck=None):
    order = lock_order(order_id)

    party = party_of(order, actor)
    if party not in PERMITTED_PARTIES[operation]:
        raise _rejected(Forbidden(
            f"Not allowed to {operation.replace('_', ' ')} this order",
            {"order_id": order.id, "operation": operation},
        ))

    next_status = TRANSITIONS.get((order.status, operation))
    # terminal states reject before any operation-specific check
    if next_status is None and order.status in TERMINAL_STATUSES:
        raise _invalid(order, operation)

    if precheck:
        try:
            precheck(order)
        except ServiceError as e:
            raise _rejected(e)

    if next_status is None:
        raise _invalid(order, operation)

    return order, next_status


def commit_order(order, operation, now, previous_status=None):
    order_id = order.id
    order.updated_at = now
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception(f"[ORDER_{operation.upper()}_FAILED] {order_id}")
        raise PersistenceUnavailable(
            f"Could not save order {operation.replace('_', ' ')}",
            {"order_id": order_id, "operation": operation},
        ) from e

    if previous_status is None:
        current_app.logger.info(f"[ORDER_{operation.upper()}] {order.id}")
    else:
        current_app.logger.info(f"[ORDER_{operation.upper()}] {order.id} {previous_status} -> {order.status}")
    return order


def _commit(order, operation, previous_status, now):
    return commit_order(order, operation, now, previous_status)


def _settle_earnings(order):
    # set once; never recomputed after manual adjustments
    if order.seller_earnings is not None:
        return

    rate = Decimal(str(current_app.config.get("PLATFORM_FEE_RATE", 0.10)))
    subtotal = Decimal(order.subtotal)
    fee = (subtotal * rate).quantize(CENTS, rounding=ROUND_HALF_UP)

    order.platform_fee = fee
    order.seller_earnings = subtotal - fee


def accept_order(order_id, actor, now=None):
    now = as_utc(now)
    order, next_status = _begin(order_id, actor, "accept")
    previous = order.status

    order.status = next_status
    order.accepted_at = now
    if order.due_date is None:
        days = (order.package_details or {}).get("delivery_time") or current_app.config.get("DEFAULT_DELIVERY_DAYS", 7)
        order.due_date = now + timedelta(days=int(days))

    return _commit(order, "accept", previous, now)


def start_order(order_id, actor, now=None):
    now = as_utc(now)
    order, next_status = _begin(order_id, actor, "start")
    previous = order.status

    order.status = next_status
    return _commit(order, "start", previous, now)


def deliver_order(order_id, actor, deliverables, now=None):
    now = as_utc(now)
    order, next_status = _begin(order_id, actor, "deliver")
    previous = order.status

    try:
        items = deliverables_schema.load(deliverables or [])
    except ValidationError as e:
        raise _rejected(ValidationFailed("Invalid deliverables", {"fields": e.messages}))
    if not items:
        raise _rejected(ValidationFailed("At least one deliverable is required"))

    stamp = now.isoformat() + "Z"
    items = [dict(item, submitted_at=stamp) for item in items]

    order.status = next_status
    order.delivered_at = now
    # history is cumulative
    order.deliverables = list(order.deliverables or []) + items

    if previous == "revision_requested":
        revisions = [dict(r) for r in (order.revisions or [])]
        for record in reversed(revisions):
            if record.get("status") == "pending":
                record.update(status="completed", responded_at=stamp, deliverables=items)
                break
        order.revisions = revisions

    return _commit(order, "deliver", previous, now)


def _check_revision_allowance(order):
    # open orders report an exhausted allowance ahead of the state
    if order.revisions_used >= order.revision_allowance:
        current_app.logger.warning(
            f"[ORDER_REVISION_LIMIT] {order.id} used={order.revisions_used} allowed={order.revision_allowance}"
        )
        raise RevisionLimitExceeded(
            "No revisions left on this package",
            {"order_id": order.id, "revisions_used": order.revisions_used, "revisions": order.revision_allowance},
        )


def request_revision(order_id, actor, reason, details=None, now=None):
    now = as_utc(now)
    order, next_status = _begin(order_id, actor, "request_revision", precheck=_check_revision_allowance)
    previous = order.status

    if not (reason or "").strip():
        raise _rejected(ValidationFailed("A revision reason is required", {"fields": {"reason": ["Required"]}}))

    order.status = next_status
    order.revisions_used += 1
    order.revisions = list(order.revisions or []) + [{
        "requested_by": order.buyer_id,
        "reason": reason.strip(),
        "details": details,
        "requested_at": now.isoformat() + "Z",
        "status": "pending",
    }]

    return _commit(order, "request_revision", previous, now)


def complete_order(order_id, actor, now=None):
    now = as_utc(now)
    order, next_status = _begin(order_id, actor, "complete")
    previous = order.status

    order.status = next_status
    if order.completed_at is None:
        order.completed_at = now
    _settle_earnings(order)

    return _commit(order, "complete", previous, now)


def cancel_order(order_id, actor, reason=None, now=None):
    now = as_utc(now)
    order, next_status = _begin(order_id, actor, "cancel")
    previous = order.status

    order.status = next_status
    order.cancelled_at = now
    order.cancellation = {
        "requested_by": actor.user_id,
        "role": party_of(order, actor),
        "reason": (reason or "").strip() or "No reason given",
        "requested_at": now.isoformat() + "Z",
    }

    return _commit(order, "cancel", previous, now)


def dispute_order(order_id, actor, reason, details=None, now=None):
    now = as_utc(now)
    order, next_status = _begin(order_id, actor, "dispute")
    previous = order.status

    if not (reason or "").strip():
        raise _rejected(ValidationFailed("A dispute reason is required", {"fields": {"reason": ["Required"]}}))

    order.status = next_status
    order.dispute = {
        "initiated_by": actor.user_id,
        "reason": reason.strip(),
        "details": details,
        "initiated_at": now.isoformat() + "Z",
        "previous_status": previous,
        "resolved_at": None,
        "resolution": None,
        "resolved_by": None,
        "outcome": None,
    }

    return _commit(order, "dispute", previous, now)


def resolve_dispute(order_id, actor, outcome, resolution=None, now=None):
    now = as_utc(now)
    order, outcomes = _begin(order_id, actor, "resolve")
    previous = order.status

    if outcome not in outcomes:
        raise _rejected(ValidationFailed(
            "Unknown dispute outcome",
            {"fields": {"outcome": [f"Must be one of: {', '.join(outcomes)}"]}},
        ))

    order.status = outcome
    if outcome == "completed":
        order.completed_at = order.completed_at or now
        _settle_earnings(order)
    elif outcome == "cancelled":
        order.cancelled_at = order.cancelled_at or now

    order.dispute = dict(
        order.dispute or {},
        resolved_at=now.isoformat() + "Z",
        resolved_by=actor.user_id,
        resolution=resolution,
        outcome=outcome,
    )

    return _commit(order, "resolve", previous, now)
