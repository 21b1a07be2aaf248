import json
import uuid
from typing import Any

from sqlalchemy import String, Text, TypeDecorator


def new_uuid() -> str:
    return str(uuid.uuid4())


class StringUUID(TypeDecorator):
    """UUID primary/foreign keys stored as 36-char strings, portable across dialects."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Convert Python value to database value."""
        if value is None:
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        """Convert database value to Python value (always string)."""
        if value is None:
            return value
        return str(value)


class JSONText(TypeDecorator):
    """JSON document serialized into a Text column."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Any, dialect):
        if value is None:
            return None
        return json.dumps(value, default=str)

    def process_result_value(self, value, dialect):
        if not value:
            return None
        return json.loads(value)
