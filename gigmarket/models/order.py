from gigmarket.extensions import db
from gigmarket.utils.clock import utcnow, as_utc
import uuid

ORDER_STATUSES = (
    "pending",             # placed, waiting for the seller
    "accepted",            # seller accepted, clock is running
    "in_progress",
    "delivered",
    "revision_requested",
    "revision_delivered",
    "completed",
    "cancelled",
    "disputed",            # waiting on an admin resolution
    "refunded",
)

ACTIVE_STATUSES = ("accepted", "in_progress", "delivered", "revision_requested", "revision_delivered")

PROGRESS_BY_STATUS = {
    "pending": 0,
    "accepted": 20,
    "in_progress": 50,
    "delivered": 80,
    "revision_requested": 60,
    "revision_delivered": 85,
    "completed": 100,
}

def gen_order_id():
    return f"ORD-{uuid.uuid4().hex[:8].upper()}"

class Order(db.Model):
    __tablename__ = "orders"

    __table_args__ = (
        db.Index("idx_orders_buyer_created", "buyer_id", "created_at"),
        db.Index("idx_orders_seller_created", "seller_id", "created_at"),
        db.Index("idx_orders_status", "status"),
        db.Index("idx_orders_due_date", "due_date"),
    )

    id = db.Column(db.String(50), primary_key=True, default=gen_order_id)

    buyer_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False)
    seller_id = db.Column(db.String(50), db.ForeignKey("users.id"), nullable=False)
    gig_id = db.Column(db.String(50), db.ForeignKey("gigs.id"), nullable=False, index=True)
    gig_title = db.Column(db.String(255))

    package = db.Column(db.String(20), nullable=False)
    # frozen copy of the gig package at order time
    package_details = db.Column(db.JSON, nullable=False, default=dict)

    subtotal = db.Column(db.Numeric(10, 2), nullable=False)
    total = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    platform_fee = db.Column(db.Numeric(10, 2), nullable=True)
    seller_earnings = db.Column(db.Numeric(10, 2), nullable=True)

    status = db.Column(db.String(30), nullable=False, default="pending")

    ordered_at = db.Column(db.DateTime, default=utcnow)
    accepted_at = db.Column(db.DateTime)
    due_date = db.Column(db.DateTime)
    delivered_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)

    requirements = db.Column(db.JSON, default=dict)
    deliverables = db.Column(db.JSON, nullable=False, default=list)
    revisions = db.Column(db.JSON, nullable=False, default=list)
    revisions_used = db.Column(db.Integer, nullable=False, default=0)

    cancellation = db.Column(db.JSON)
    dispute = db.Column(db.JSON)

    messages = db.Column(db.JSON, nullable=False, default=list)
    last_message_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    buyer = db.relationship("User", foreign_keys=[buyer_id], backref="buyer_orders", lazy=True)
    seller = db.relationship("User", foreign_keys=[seller_id], backref="seller_orders", lazy=True)
    gig = db.relationship("Gig", backref=db.backref("orders", lazy=True), lazy=True)

    @property
    def revision_allowance(self):
        return int((self.package_details or {}).get("revisions") or 0)

    @property
    def progress(self):
        return PROGRESS_BY_STATUS.get(self.status, 0)

    def time_remaining(self, now=None):
        if not self.due_date or self.status == "completed":
            return None

        seconds = (self.due_date - as_utc(now)).total_seconds()
        if seconds <= 0:
            return "overdue"

        days = int(seconds // 86400)
        if days > 0:
            return f"{days} day{'s' if days > 1 else ''} left"
        hours = int((seconds % 86400) // 3600)
        return f"{hours} hour{'s' if hours > 1 else ''} left"
