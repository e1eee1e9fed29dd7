from gigmarket.extensions import db
from gigmarket.utils.clock import utcnow
import uuid

PACKAGE_TIERS = ("basic", "standard", "premium")

def gen_gig_id():
    return f"gig-{str(uuid.uuid4())[:8]}"

class Gig(db.Model):
    __tablename__ = "gigs"

    __table_args__ = (
        db.Index("idx_gigs_seller_id", "seller_id"),
        db.Index("idx_gigs_status", "status"),
    )

    id = db.Column(db.String(50), primary_key=True, default=gen_gig_id)
    seller_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(30), nullable=False, default="active")

    # {"basic": {"title", "description", "price", "delivery_time", "revisions", "features"}, ...}
    packages = db.Column(db.JSON, nullable=False, default=dict)

    # cached aggregates, written only by rating_service
    rating = db.Column(db.Float, nullable=False, default=0.0)
    total_reviews = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    seller = db.relationship("User", backref=db.backref("gigs", lazy=True))

    def get_package(self, tier):
        if tier not in PACKAGE_TIERS:
            return None
        return (self.packages or {}).get(tier)
