from marshmallow import fields, validate, validates_schema, ValidationError
from gigmarket.extensions import ma

RATING_RANGE = validate.Range(min=1, max=5)
SUB_RATINGS = ("communication", "service_quality", "delivery_time")


class ReviewCreateSchema(ma.Schema):
    overall = fields.Integer(validate=RATING_RANGE, strict=True)
    communication = fields.Integer(validate=RATING_RANGE, strict=True)
    service_quality = fields.Integer(validate=RATING_RANGE, strict=True)
    delivery_time = fields.Integer(validate=RATING_RANGE, strict=True)
    would_recommend = fields.Boolean(load_default=True)
    title = fields.String(validate=validate.Length(max=100))
    comment = fields.String(required=True, validate=validate.Length(min=1, max=1000))

    @validates_schema
    def require_some_rating(self, data, **kwargs):
        if data.get("overall") is None and not any(data.get(k) is not None for k in SUB_RATINGS):
            raise ValidationError("An overall rating or at least one detailed rating is required", "overall")


class ReviewSchema(ma.Schema):
    id = fields.String()
    order_id = fields.String()
    gig_id = fields.String()
    buyer_id = fields.String()
    seller_id = fields.String()
    rating = fields.Method("get_rating")
    title = fields.String(allow_none=True)
    comment = fields.String()
    status = fields.String()
    helpful_count = fields.Integer()
    response = fields.Method("get_response")
    package_type = fields.String(allow_none=True)
    created_at = fields.DateTime()
    published_at = fields.DateTime(allow_none=True)

    def get_rating(self, review):
        return {
            "overall": review.rating_overall,
            "communication": review.rating_communication,
            "service_quality": review.rating_service_quality,
            "delivery_time": review.rating_delivery_time,
            "would_recommend": review.would_recommend,
            "detailed": review.detailed_rating,
        }

    def get_response(self, review):
        if not review.response_comment:
            return None
        return {
            "comment": review.response_comment,
            "responded_at": review.responded_at.isoformat() + "Z" if review.responded_at else None,
        }


review_create_schema = ReviewCreateSchema()
review_schema = ReviewSchema()
reviews_schema = ReviewSchema(many=True)
