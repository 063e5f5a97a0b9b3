"""
Request Schemas
===============
Strict input schemas, validated before any catalog lookup happens.

Unknown fields are rejected, so a client can never slip a price into a
request. Field names follow the camelCase wire format; snake_case names
are accepted too.
"""

from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator
)
from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError


# Same ceiling for size and add-on prices
MAX_PRICE = 10000.00

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class StrictSchema(BaseModel):
    """Base for all request schemas."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        populate_by_name=True
    )


def _reject_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


# ============================================================================
# ORDERS
# ============================================================================

class OrderLineRequest(StrictSchema):
    """One requested order line: product + size + optional add-ons."""

    product_id: StrictInt = Field(alias="productId")
    size_label: StrictStr = Field(alias="sizeLabel", min_length=1)
    add_on_ids: List[StrictInt] = Field(default_factory=list, alias="addOnIds")

    @field_validator("size_label")
    @classmethod
    def _size_label_not_blank(cls, value: str) -> str:
        return _reject_blank(value)

    @field_validator("add_on_ids")
    @classmethod
    def _no_duplicate_add_ons(cls, value: List[int]) -> List[int]:
        seen = set()
        duplicates = []
        for add_on_id in value:
            if add_on_id in seen and add_on_id not in duplicates:
                duplicates.append(add_on_id)
            seen.add(add_on_id)
        if duplicates:
            raise ValueError(f"duplicate add-on ids: {duplicates}")
        return value


class CreateOrderRequest(StrictSchema):
    """Full order-creation request."""

    customer_name: StrictStr = Field(alias="customerName", min_length=1)
    phone: StrictStr = Field(min_length=1)
    address: StrictStr = Field(min_length=1)
    payment_method: StrictStr = Field(alias="paymentMethod", min_length=1)
    lines: List[OrderLineRequest] = Field(min_length=1)

    @field_validator("customer_name", "phone", "address", "payment_method")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        return _reject_blank(value)


# ============================================================================
# CATALOG
# ============================================================================

class SizeCreate(StrictSchema):
    label: StrictStr = Field(min_length=1)
    price: StrictFloat = Field(ge=0, le=MAX_PRICE, allow_inf_nan=False)

    @field_validator("label")
    @classmethod
    def _label_not_blank(cls, value: str) -> str:
        return _reject_blank(value)


class ProductCreate(StrictSchema):
    """New catalog product. The image is a reference produced elsewhere."""

    name: StrictStr = Field(min_length=1)
    description: StrictStr = ""
    image: Optional[StrictStr] = None
    sizes: List[SizeCreate] = Field(min_length=1)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        return _reject_blank(value)

    @field_validator("sizes")
    @classmethod
    def _unique_labels(cls, value: List[SizeCreate]) -> List[SizeCreate]:
        labels = [size.label for size in value]
        if len(set(labels)) != len(labels):
            raise ValueError("size labels must be unique within a product")
        return value


class AddOnCreate(StrictSchema):
    name: StrictStr = Field(min_length=1)
    category: Literal["ADICIONAL", "INCLUSAO"]
    price: StrictFloat = Field(ge=0, le=MAX_PRICE, allow_inf_nan=False)
    active: StrictBool = True

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        return _reject_blank(value)


# ============================================================================
# PARSING
# ============================================================================

def parse(schema: Type[SchemaT], data: Any) -> SchemaT:
    """
    Validate raw input against a schema.

    Args:
        schema: Schema class
        data: Raw mapping (or an already-built schema instance)

    Returns:
        Schema instance

    Raises:
        ValidationError: If input does not match the schema
    """
    if isinstance(data, schema):
        return data

    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"invalid {schema.__name__}",
            details=_error_details(e)
        ) from e


def _error_details(error: PydanticValidationError) -> List[Dict[str, Any]]:
    return [
        {
            "loc": ".".join(str(part) for part in err["loc"]),
            "msg": err["msg"]
        }
        for err in error.errors()
    ]
