from decimal import Decimal, ROUND_HALF_UP
from flask import current_app
from marshmallow import ValidationError
from sqlalchemy.exc import IntegrityError
from gigmarket.extensions import db
from gigmarket.models.order import Order
from gigmarket.models.review import Review
from gigmarket.schemas.review_schema import review_create_schema, SUB_RATINGS
from gigmarket.services.rating_service import refresh_ratings_for
from gigmarket.utils.clock import as_utc
from gigmarket.utils.exceptions import (
    DuplicateReview,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)
from gigmarket.utils.pagination import paginate_query

# moderation moves; nothing returns to pending
REVIEW_TRANSITIONS = {
    "pending": {"published", "hidden"},
    "published": {"hidden", "flagged"},
    "flagged": {"published", "hidden"},
    "hidden": {"published"},
}


def derive_overall(data):
    if data.get("overall") is not None:
        return data["overall"]
    ratings = [data[k] for k in SUB_RATINGS if data.get(k) is not None]
    mean = Decimal(sum(ratings)) / Decimal(len(ratings))
    return int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _load_review(review_id, lock=False):
    q = Review.query.filter_by(id=review_id)
    if lock:
        q = q.with_for_update().populate_existing()
    review = q.first()
    if not review:
        db.session.rollback()
        raise NotFound("Review not found", {"review_id": review_id})
    return review


def _commit_status_change(review, was_published):
    db.session.commit()
    current_app.logger.info(f"[REVIEW_STATUS] {review.id} -> {review.status}")

    # aggregates only move when the published set changes
    if was_published != review.is_published:
        refresh_ratings_for(review)
    return review


def create_review(order_id, actor, data, now=None):
    now = as_utc(now)

    order = db.session.get(Order, order_id)
    if not order:
        raise NotFound("Order not found", {"order_id": order_id})
    if actor.user_id != order.buyer_id:
        raise Forbidden("Only the buyer of this order can review it", {"order_id": order_id})
    if order.status != "completed":
        raise InvalidTransition("You can only review completed orders", {"order_id": order_id, "status": order.status})
    if Review.query.filter_by(order_id=order.id).first():
        raise DuplicateReview("This order has already been reviewed", {"order_id": order_id})

    try:
        payload = review_create_schema.load(data or {})
    except ValidationError as e:
        raise ValidationFailed("Invalid review", {"fields": e.messages})

    review = Review(
        order_id=order.id,
        gig_id=order.gig_id,
        buyer_id=order.buyer_id,
        seller_id=order.seller_id,
        rating_overall=derive_overall(payload),
        rating_communication=payload.get("communication"),
        rating_service_quality=payload.get("service_quality"),
        rating_delivery_time=payload.get("delivery_time"),
        would_recommend=payload["would_recommend"],
        title=payload.get("title"),
        comment=payload["comment"],
        status="pending",
        order_value=order.total,
        package_type=order.package,
        created_at=now,
        updated_at=now,
    )

    try:
        db.session.add(review)
        db.session.commit()
    except IntegrityError:
        # a concurrent submission won the unique order_id
        db.session.rollback()
        raise DuplicateReview("This order has already been reviewed", {"order_id": order_id})

    current_app.logger.info(f"[REVIEW_CREATE] {review.id} order={order.id} rating={review.rating_overall}")
    return review


def _moderate(review_id, actor, new_status, now):
    if not (actor.is_admin or actor.is_system):
        raise Forbidden("Only moderators can change review visibility", {"review_id": review_id})

    review = _load_review(review_id, lock=True)
    if new_status not in REVIEW_TRANSITIONS.get(review.status, ()):
        db.session.rollback()
        raise InvalidTransition(
            f"Cannot move a {review.status} review to {new_status}",
            {"review_id": review.id, "status": review.status},
        )

    was_published = review.is_published
    review.status = new_status
    review.updated_at = now
    if new_status == "published" and review.published_at is None:
        review.published_at = now
    if new_status == "published":
        review.is_flagged = False

    return _commit_status_change(review, was_published)


def publish_review(review_id, actor, now=None):
    return _moderate(review_id, actor, "published", as_utc(now))


def hide_review(review_id, actor, now=None):
    return _moderate(review_id, actor, "hidden", as_utc(now))


def mark_helpful(review_id, user_id):
    review = _load_review(review_id, lock=True)
    voters = list(review.helpful_voters or [])

    if user_id in voters:
        db.session.rollback()
        return review

    voters.append(user_id)
    review.helpful_voters = voters
    review.helpful_count = len(voters)
    db.session.commit()
    return review


def unmark_helpful(review_id, user_id):
    review = _load_review(review_id, lock=True)
    voters = list(review.helpful_voters or [])

    if user_id not in voters:
        db.session.rollback()
        return review

    voters.remove(user_id)
    review.helpful_voters = voters
    review.helpful_count = len(voters)
    db.session.commit()
    return review


def flag_review(review_id, user_id, reason, now=None):
    now = as_utc(now)
    review = _load_review(review_id, lock=True)
    flags = list(review.flags or [])

    if any(f.get("user_id") == user_id for f in flags):
        db.session.rollback()
        return review

    flags.append({"user_id": user_id, "reason": reason, "flagged_at": now.isoformat() + "Z"})
    review.flags = flags
    review.is_flagged = True
    review.updated_at = now

    was_published = review.is_published
    threshold = current_app.config.get("REVIEW_FLAG_THRESHOLD", 3)
    if len(flags) >= threshold and review.status != "flagged":
        # overrides the moderation graph
        review.status = "flagged"
        current_app.logger.warning(f"[REVIEW_AUTO_FLAGGED] {review.id} after {len(flags)} flags")

    return _commit_status_change(review, was_published)


def respond_to_review(review_id, actor, comment, now=None):
    now = as_utc(now)
    comment = (comment or "").strip()

    review = _load_review(review_id, lock=True)
    if actor.user_id != review.seller_id:
        db.session.rollback()
        raise Forbidden("Only the reviewed seller can respond", {"review_id": review_id})
    if review.response_comment:
        db.session.rollback()
        raise InvalidTransition("This review already has a response", {"review_id": review_id})
    if not comment or len(comment) > 500:
        db.session.rollback()
        raise ValidationFailed("Response must be between 1 and 500 characters", {"fields": {"comment": ["Invalid length"]}})

    review.response_comment = comment
    review.responded_at = now
    db.session.commit()
    return review


def list_gig_reviews(gig_id, page=1, limit=10, min_rating=None):
    q = Review.query.filter(Review.gig_id == gig_id, Review.status == "published")
    if min_rating:
        q = q.filter(Review.rating_overall >= int(min_rating))
    return paginate_query(q.order_by(Review.created_at.desc()), page, limit)


def list_seller_reviews(seller_id, page=1, limit=10):
    q = Review.query.filter(Review.seller_id == seller_id, Review.status == "published")
    return paginate_query(q.order_by(Review.created_at.desc()), page, limit)


def list_pending_reviews():
    return Review.query.filter_by(status="pending").order_by(Review.created_at).all()


def list_flagged_reviews():
    return (
        Review.query
        .filter(Review.is_flagged.is_(True), Review.status != "hidden")
        .order_by(Review.updated_at)
        .all()
    )
