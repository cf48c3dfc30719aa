"""Shared schema base."""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase field names; snake_case also accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ClosedModel(CamelModel):
    """CamelModel that rejects unknown keys instead of ignoring them."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")
