from datetime import datetime, timezone

def utcnow():
    # timestamps are stored as naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)

def as_utc(value):
    if value is None:
        return utcnow()
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

def isoformat(value):
    return value.isoformat() + "Z" if value else None
