from gigmarket.extensions import db
from gigmarket.utils.clock import utcnow, isoformat
import uuid

def gen_uuid(prefix=None):
    uid = str(uuid.uuid4())
    return f"{prefix}-{uid}" if prefix else uid

class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        db.Index("idx_users_role", "role"),
        db.Index("idx_users_seller_rating", "seller_rating"),
    )

    id = db.Column(db.String(50), primary_key=True, default=lambda: gen_uuid("usr"))
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(255))
    role = db.Column(db.String(50), nullable=False, default="buyer")
    profile_image = db.Column(db.String(1024), nullable=True)

    # cached aggregates, written only by rating_service
    seller_rating = db.Column(db.Float, nullable=False, default=0.0)
    seller_total_reviews = db.Column(db.Integer, nullable=False, default=0)

    joined_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "profile_image": self.profile_image,
            "seller_rating": self.seller_rating,
            "seller_total_reviews": self.seller_total_reviews,
            "joined_at": isoformat(self.joined_at),
        }
