from __future__ import annotations
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import MAX_INR_AMOUNT, DiscountType


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class OfferOut(BaseModel):
    id: int
    code: str
    title: str
    description: Optional[str] = None
    discount_type: str
    discount_value: float
    min_amount: float
    max_discount: Optional[float] = None
    valid_from: datetime
    valid_until: datetime
    usage_limit: Optional[int] = None
    usage_count: int
    is_active: bool

    @classmethod
    def from_row(cls, row: dict) -> "OfferOut":
        return cls(
            id=row["id"],
            code=row["code"],
            title=row["title"],
            description=row.get("description"),
            discount_type=row["discount_type"],
            discount_value=row["discount_value"],
            min_amount=row["min_amount"],
            max_discount=row.get("max_discount"),
            valid_from=_parse_ts(row["valid_from"]),
            valid_until=_parse_ts(row["valid_until"]),
            usage_limit=row.get("usage_limit"),
            usage_count=row["usage_count"],
            is_active=bool(row["is_active"]),
        )


class OfferValidateIn(BaseModel):
    code: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0, le=MAX_INR_AMOUNT, allow_inf_nan=False)

    @field_validator("code")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.strip().upper()


def _normalize_offer_code(v: str) -> str:
    code = v.strip().upper()
    if not code.isalnum():
        raise ValueError("offer code must be alphanumeric")
    return code


class OfferCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=20)
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    discount_type: DiscountType
    discount_value: float = Field(..., gt=0, allow_inf_nan=False)
    min_amount: float = Field(0, ge=0, le=MAX_INR_AMOUNT)
    max_discount: Optional[float] = Field(None, gt=0, le=MAX_INR_AMOUNT)
    valid_from: datetime
    valid_until: datetime
    usage_limit: Optional[int] = Field(None, ge=1)
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def _code(cls, v: str) -> str:
        return _normalize_offer_code(v)

    @model_validator(mode="after")
    def _consistent(self) -> "OfferCreate":
        if self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        if self.discount_type != "FLAT" and self.discount_value > 100:
            raise ValueError("percentage discounts cannot exceed 100")
        return self


# Optional offer columns an update may clear with an explicit null
NULLABLE_OFFER_FIELDS = frozenset({"description", "max_discount", "usage_limit"})


class OfferUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value, nulls are rejected."""

    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    discount_value: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    min_amount: Optional[float] = Field(None, ge=0, le=MAX_INR_AMOUNT)
    max_discount: Optional[float] = Field(None, gt=0, le=MAX_INR_AMOUNT)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def _check_fields(self) -> "OfferUpdate":
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided for update")
        nulls = sorted(
            f for f in self.model_fields_set - NULLABLE_OFFER_FIELDS if getattr(self, f) is None
        )
        if nulls:
            raise ValueError(f"fields cannot be null: {', '.join(nulls)}")
        return self


class OfferSummary(BaseModel):
    code: str
    title: str
    description: Optional[str] = None
    discount_type: str
    discount_value: float


class OfferValidationOut(BaseModel):
    offer: OfferSummary
    discount: float
    final_amount: float
    cashback: float = 0.0
