from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

CENTS = Decimal("0.01")
# Numeric(18, 2)
MAX_PRICE = Decimal("9999999999999999.99")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductIn(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=1000)
    price: Decimal = Field(gt=0, lt=10**16)
    image: Optional[str] = Field(default=None, max_length=2048)

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_required_text(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return v

    @field_validator("price", mode="before")
    @classmethod
    def float_price_via_str(cls, v):
        # 9.99 must not turn into 9.9900000000000002131628...
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @field_validator("price")
    @classmethod
    def round_price(cls, v: Decimal) -> Decimal:
        v = v.quantize(CENTS, rounding=ROUND_HALF_UP)
        if v <= 0:
            raise ValueError("Price must be greater than 0")
        if v > MAX_PRICE:
            raise ValueError(f"Price cannot exceed {MAX_PRICE}")
        return v

    @field_validator("image", mode="before")
    @classmethod
    def blank_image_is_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class ProductUpdate(ProductIn):
    id: int


class ProductOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    name: str
    description: str
    price: Decimal
    image: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        # SQLite hands back naive values; everything is stored as UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_serializer("price")
    def price_as_number(self, v: Decimal) -> float:
        return float(v)


class MessageOut(BaseModel):
    message: str


class ControllerStatus(MessageOut):
    timestamp: datetime
