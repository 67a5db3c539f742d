from typing import Annotated

from pydantic import BaseModel, PlainSerializer
from pydantic.alias_generators import to_camel


# Identifiers are 64-bit; JSON clients get them as decimal strings
BigId = Annotated[int, PlainSerializer(lambda value: str(value), return_type=str, when_used="json")]


class CamelModel(BaseModel):
    """Base schema that reads snake_case attributes and emits camelCase keys."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
