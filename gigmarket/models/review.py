from gigmarket.extensions import db
from gigmarket.utils.clock import utcnow
import uuid

REVIEW_STATUSES = ("pending", "published", "hidden", "flagged")

def gen_uuid(prefix="rev"):
    return f"{prefix}-{str(uuid.uuid4())[:8]}"

class Review(db.Model):
    __tablename__ = "reviews"

    __table_args__ = (
        db.Index("idx_reviews_gig_created", "gig_id", "created_at"),
        db.Index("idx_reviews_seller_created", "seller_id", "created_at"),
        db.Index("idx_reviews_buyer_id", "buyer_id"),
        db.Index("idx_reviews_status", "status"),
    )

    id = db.Column(
        db.String(50),
        primary_key=True,
        default=lambda: gen_uuid("rev")
    )

    # one review per order
    order_id = db.Column(
        db.String(50),
        db.ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True
    )

    # copied from the order so listings need no join
    gig_id = db.Column(db.String(50), db.ForeignKey("gigs.id"), nullable=False)
    buyer_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False)
    seller_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False)

    rating_overall = db.Column(db.Integer, nullable=False)
    rating_communication = db.Column(db.Integer)
    rating_service_quality = db.Column(db.Integer)
    rating_delivery_time = db.Column(db.Integer)
    would_recommend = db.Column(db.Boolean, nullable=False, default=True)

    title = db.Column(db.String(100))
    comment = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(20), nullable=False, default="pending")

    helpful_voters = db.Column(db.JSON, nullable=False, default=list)
    helpful_count = db.Column(db.Integer, nullable=False, default=0)

    flags = db.Column(db.JSON, nullable=False, default=list)
    is_flagged = db.Column(db.Boolean, nullable=False, default=False)

    response_comment = db.Column(db.String(500))
    responded_at = db.Column(db.DateTime)

    order_value = db.Column(db.Numeric(10, 2))
    package_type = db.Column(db.String(20))

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    published_at = db.Column(db.DateTime)

    # Relationships
    order = db.relationship(
        "Order",
        backref=db.backref("review", uselist=False)
    )

    gig = db.relationship("Gig")

    buyer = db.relationship(
        "User",
        foreign_keys=[buyer_id]
    )

    seller = db.relationship(
        "User",
        foreign_keys=[seller_id]
    )

    @property
    def is_published(self):
        return self.status == "published"

    @property
    def detailed_rating(self):
        """Mean of the sub-ratings to one decimal, or the overall rating when none were given."""
        ratings = [
            r for r in (self.rating_communication, self.rating_service_quality, self.rating_delivery_time)
            if r is not None
        ]
        if not ratings:
            return self.rating_overall
        return round(sum(ratings) / len(ratings), 1)
