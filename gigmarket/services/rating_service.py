"""
Rating aggregation.

Gig and seller ratings are cached aggregates of published reviews. They
are always rebuilt from the full published set, never nudged by a running
average, so re-running a recompute is harmless and a missed trigger is
repaired by the next one (or by ``flask ratings rebuild``).
"""
from decimal import Decimal, ROUND_HALF_UP
from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from gigmarket.extensions import db
from gigmarket.models.gig import Gig
from gigmarket.models.review import Review
from gigmarket.models.user import User
from gigmarket.utils.exceptions import NotFound, PersistenceUnavailable


def mean_rating(ratings):
    """Half-up mean to one decimal; 0.0 for no ratings."""
    ratings = list(ratings)
    if not ratings:
        return 0.0
    mean = Decimal(sum(ratings)) / Decimal(len(ratings))
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _published_ratings(*criteria):
    rows = (
        db.session.query(Review.rating_overall)
        .filter(Review.status == "published", *criteria)
        .all()
    )
    return [r.rating_overall for r in rows]


def recompute_gig_rating(gig_id):
    try:
        gig = db.session.get(Gig, gig_id)
        if not gig:
            raise NotFound("Gig not found", {"gig_id": gig_id})

        ratings = _published_ratings(Review.gig_id == gig_id)
        gig.rating = mean_rating(ratings)
        gig.total_reviews = len(ratings)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceUnavailable("Could not recompute gig rating", {"gig_id": gig_id}) from e

    return gig


def recompute_seller_rating(seller_id):
    try:
        seller = db.session.get(User, seller_id)
        if not seller:
            raise NotFound("Seller not found", {"seller_id": seller_id})

        ratings = _published_ratings(Review.seller_id == seller_id)
        seller.seller_rating = mean_rating(ratings)
        seller.seller_total_reviews = len(ratings)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceUnavailable("Could not recompute seller rating", {"seller_id": seller_id}) from e

    return seller


def refresh_ratings_for(review):
    """
    Best-effort refresh after a review crossed the published boundary.

    The review change is already committed when this runs, so failures are
    logged for the out-of-band rebuild instead of being raised.
    """
    review_id, gig_id, seller_id = review.id, review.gig_id, review.seller_id
    ok = True

    for recompute, target in ((recompute_gig_rating, gig_id), (recompute_seller_rating, seller_id)):
        try:
            recompute(target)
        except (PersistenceUnavailable, NotFound):
            ok = False
            current_app.logger.exception(
                f"[RATING_REFRESH_FAILED] {recompute.__name__}({target}) for review {review_id}"
            )

    return ok


def rebuild_all_ratings():
    gig_ids = [row.id for row in db.session.query(Gig.id).all()]
    seller_ids = [row.id for row in db.session.query(User.id).filter(User.role == "seller").all()]
    # sellers whose role changed still own reviews
    seller_ids += [
        row.seller_id for row in db.session.query(Review.seller_id).distinct().all()
        if row.seller_id not in seller_ids
    ]

    failed = []
    for gig_id in gig_ids:
        try:
            recompute_gig_rating(gig_id)
        except (PersistenceUnavailable, NotFound):
            current_app.logger.exception(f"[RATING_REBUILD_FAILED] gig {gig_id}")
            failed.append(gig_id)

    for seller_id in seller_ids:
        try:
            recompute_seller_rating(seller_id)
        except (PersistenceUnavailable, NotFound):
            current_app.logger.exception(f"[RATING_REBUILD_FAILED] seller {seller_id}")
            failed.append(seller_id)

    return {"gigs": len(gig_ids), "sellers": len(seller_ids), "failed": failed}


def gig_rating_stats(gig_id):
    rows = (
        db.session.query(Review.rating_overall, func.count(Review.id))
        .filter(Review.gig_id == gig_id, Review.status == "published")
        .group_by(Review.rating_overall)
        .all()
    )
    breakdown = {star: 0 for star in range(1, 6)}
    for rating, count in rows:
        breakdown[rating] = count

    ratings = [star for star, count in breakdown.items() for _ in range(count)]
    return {
        "average_rating": mean_rating(ratings),
        "total_reviews": len(ratings),
        "breakdown": breakdown,
    }
