from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

CENTS = Decimal("0.01")

# Decimal in Python, plain number on the wire.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


def quantize(value: Decimal) -> Decimal:
    """Round to 2 decimal places using ROUND_HALF_UP."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class CamelModel(BaseModel):
    """Base for models exposed over HTTP: snake_case in Python, camelCase in JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
