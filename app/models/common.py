"""Common models and base classes"""

from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional

from bson import Decimal128, ObjectId
from pydantic import AfterValidator, BaseModel, BeforeValidator
from typing_extensions import Annotated

CENTS = Decimal("0.01")


def _object_id_to_str(v: Any) -> Any:
    if isinstance(v, ObjectId):
        return str(v)
    return v


def _decimal128_to_decimal(v: Any) -> Any:
    if isinstance(v, Decimal128):
        return v.to_decimal()
    return v


def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary amount to cents"""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


# MongoDB ObjectId exposed as its hex string
PyObjectId = Annotated[str, BeforeValidator(_object_id_to_str)]

# Monetary amount; stored as Decimal128, always carried as cents-precision Decimal
Money = Annotated[Decimal, BeforeValidator(_decimal128_to_decimal), AfterValidator(quantize_money)]


def to_mongo(value: Any) -> Any:
    """
    Convert Python values into BSON-friendly values.

    Decimals become Decimal128 and enums their raw value, recursively through
    dicts and lists.
    """
    if isinstance(value, Decimal):
        return Decimal128(quantize_money(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_mongo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_mongo(v) for v in value]
    return value


class Address(BaseModel):
    """Postal address (shipping or billing)"""
    street: str
    city: str
    state: Optional[str] = None
    zip: str
    country: str

    class Config:
        json_schema_extra = {
            "example": {
                "street": "221B Baker Street",
                "city": "London",
                "state": None,
                "zip": "NW1 6XE",
                "country": "GB",
            }
        }
