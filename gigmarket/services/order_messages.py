import uuid
from marshmallow import ValidationError
from gigmarket.extensions import db
from gigmarket.schemas.order_schema import message_create_schema
from gigmarket.services.order_lifecycle import commit_order, lock_order, party_of
from gigmarket.utils.clock import as_utc
from gigmarket.utils.exceptions import Forbidden, NotFound, ValidationFailed

MESSAGE_PARTIES = {"buyer", "seller", "admin"}


def gen_message_id():
    return f"msg-{uuid.uuid4().hex[:8]}"


def _lock_for(order_id, actor):
    order = lock_order(order_id)
    party = party_of(order, actor)
    if party not in MESSAGE_PARTIES:
        db.session.rollback()
        raise Forbidden("Not a party to this order", {"order_id": order.id})
    return order


def add_order_message(order_id, actor, content, attachments=None, now=None):
    """Append a message to the order thread; allowed in any order status."""
    now = as_utc(now)
    order = _lock_for(order_id, actor)

    try:
        payload = message_create_schema.load({
            "content": (content or "").strip(),
            "attachments": attachments or [],
        })
    except ValidationError as e:
        db.session.rollback()
        raise ValidationFailed("Invalid message", {"fields": e.messages})

    message = {
        "id": gen_message_id(),
        "sender_id": actor.user_id,
        "content": payload["content"],
        "attachments": payload["attachments"],
        "sent_at": now.isoformat() + "Z",
        "read_by": [],
    }
    order.messages = list(order.messages or []) + [message]
    order.last_message_at = now

    commit_order(order, "message", now)
    return message


def mark_message_read(order_id, message_id, actor, now=None):
    now = as_utc(now)
    order = _lock_for(order_id, actor)

    messages = [dict(m) for m in (order.messages or [])]
    message = next((m for m in messages if m.get("id") == message_id), None)
    if message is None:
        db.session.rollback()
        raise NotFound("Message not found", {"order_id": order.id, "message_id": message_id})

    readers = list(message.get("read_by") or [])
    if any(r.get("user_id") == actor.user_id for r in readers):
        db.session.rollback()
        return message

    message["read_by"] = readers + [{"user_id": actor.user_id, "read_at": now.isoformat() + "Z"}]
    order.messages = messages

    commit_order(order, "message_read", now)
    return message


def unread_messages(order, user_id):
    return [
        m for m in (order.messages or [])
        if m.get("sender_id") != user_id
        and not any(r.get("user_id") == user_id for r in (m.get("read_by") or []))
    ]
