from marshmallow import fields, validate
from gigmarket.extensions import ma
from gigmarket.models.gig import PACKAGE_TIERS

DELIVERABLE_TYPES = ("text", "file", "link")


class DeliverableFileSchema(ma.Schema):
    url = fields.String(required=True)
    file_id = fields.String()
    name = fields.String()
    size = fields.Integer()
    type = fields.String()


class DeliverableSchema(ma.Schema):
    type = fields.String(required=True, validate=validate.OneOf(DELIVERABLE_TYPES))
    content = fields.String()
    files = fields.List(fields.Nested(DeliverableFileSchema), load_default=list)


class OrderCreateSchema(ma.Schema):
    gig_id = fields.String(required=True)
    package = fields.String(required=True, validate=validate.OneOf(PACKAGE_TIERS))
    requirements = fields.Dict(load_default=dict)


class MessageCreateSchema(ma.Schema):
    content = fields.String(required=True, validate=validate.Length(min=1, max=2000))
    attachments = fields.List(fields.Nested(DeliverableFileSchema), load_default=list)


class OrderListSchema(ma.Schema):
    id = fields.String()
    gig_id = fields.String()
    gig_title = fields.String()
    buyer_id = fields.String()
    seller_id = fields.String()
    package = fields.String()
    total = fields.Float()
    currency = fields.String()
    status = fields.String()
    progress = fields.Integer()
    due_date = fields.DateTime()
    created_at = fields.DateTime()


class OrderDetailSchema(OrderListSchema):
    package_details = fields.Dict()
    subtotal = fields.Float()
    platform_fee = fields.Float(allow_none=True)
    seller_earnings = fields.Float(allow_none=True)
    ordered_at = fields.DateTime()
    accepted_at = fields.DateTime(allow_none=True)
    delivered_at = fields.DateTime(allow_none=True)
    completed_at = fields.DateTime(allow_none=True)
    cancelled_at = fields.DateTime(allow_none=True)
    requirements = fields.Dict()
    deliverables = fields.List(fields.Dict())
    revisions = fields.List(fields.Dict())
    revisions_used = fields.Integer()
    cancellation = fields.Dict(allow_none=True)
    dispute = fields.Dict(allow_none=True)
    messages = fields.List(fields.Dict())
    last_message_at = fields.DateTime(allow_none=True)
    time_remaining = fields.Method("get_time_remaining")
    updated_at = fields.DateTime()

    def get_time_remaining(self, order):
        return order.time_remaining()


order_list_schema = OrderListSchema(many=True)
order_detail_schema = OrderDetailSchema()
deliverables_schema = DeliverableSchema(many=True)
order_create_schema = OrderCreateSchema()
message_create_schema = MessageCreateSchema()
