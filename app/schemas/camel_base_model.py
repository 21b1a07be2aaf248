from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel


class CamelCaseBaseModel(BaseModel):
    """
    Base for request and response schemas exchanged with the dashboard.

    Clients send and receive camelCase keys; snake_case is accepted on input.
    Serialize with ``model_dump(by_alias=True)``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_serializer("*")
    def serialize_any(self, value):
        if isinstance(value, Enum):
            return value.value
        # Naive UTC timestamps from the database are emitted as ISO-8601
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self.serialize_any(item) for item in value]
        if isinstance(value, dict):
            return {key: self.serialize_any(val) for key, val in value.items()}
        if isinstance(value, BaseModel):
            return value.model_dump(by_alias=True)
        return value
