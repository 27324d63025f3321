# mediconnect/schemas/common/common.py
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Any, Optional


class RequestModel(BaseModel):
    """Request bodies accept both camelCase and snake_case keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(BaseModel):
    success: bool
    timestamp: str
    message: Optional[str] = None
    data: Optional[Any] = None


class Pagination(BaseModel):
    current: int
    total: int
    total_records: int
