"""
Shared helpers for the aggregate models
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utc_now():
    """Helper function for Pydantic default_factory to get current UTC time"""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def to_plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_plain(v) for v in value]
    return value


class DomainModel(BaseModel):
    """Base model: snake_case in Python and storage, camelCase on the wire"""

    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        use_enum_values=False,
    )

    def to_document(self) -> dict:
        """Plain dict for storage, keyed by field name, enums stored by value"""
        return to_plain(self.model_dump(mode="python"))

    def to_response(self) -> dict:
        """JSON-compatible dict for HTTP responses"""
        return self.model_dump(mode="json", by_alias=True)
