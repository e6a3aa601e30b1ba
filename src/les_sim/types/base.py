"""Reusable pydantic base models for simulator configuration and chain data."""

from typing import Any, Self

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    A base model that accepts and emits camelCase keys.

    For example, the field name `deploy_payment_contract` is read from (and
    serialized to) `deployPaymentContract`, while the snake_case name keeps
    working for Python callers.

    This lets the same models be loaded from YAML files, passed to
    subprocess nodes as JSON, and served over the HTTP surface.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_default=True,
        arbitrary_types_allowed=True,
    )

    def copy(self: Self, **kwargs: Any) -> Self:
        """Create a copy of the model with the updated fields that are validated."""
        return self.__class__(**(self.model_dump(exclude_unset=True) | kwargs))


class FrozenModel(CamelModel):
    """An immutable model that rejects unknown fields."""

    model_config = CamelModel.model_config | {
        "extra": "forbid",
        "frozen": True,
    }


class StrictBaseModel(FrozenModel):
    """A strict, immutable pydantic base model."""

    model_config = FrozenModel.model_config | {
        "strict": True,
    }
