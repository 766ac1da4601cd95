"""
Shared schema base.

The frontend speaks camelCase JSON while Python code uses snake_case, so
request/response models derive from CamelModel: fields are declared in
snake_case, accepted under either name, and serialized as camelCase.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class ErrorResponse(CamelModel):
    """Body of every error response (documented in OpenAPI)."""
    success: bool = False
    error: str
