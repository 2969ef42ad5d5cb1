from __future__ import annotations
from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator, model_validator

from .constants import MAX_FOREIGN_AMOUNT, AlertType, DeliveryType, ProductType


def _normalize_code(v: str) -> str:
    code = v.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError("currency code must be 3 letters")
    return code


CurrencyCode = Annotated[str, AfterValidator(_normalize_code)]


class RateCreate(BaseModel):
    currency_code: CurrencyCode
    currency_name: str = Field(..., min_length=1)
    base_rate: float = Field(..., gt=0)
    buy_rate: float = Field(..., gt=0)
    sell_rate: float = Field(..., gt=0)
    markup: float = Field(0, ge=0)


class RateUpdate(BaseModel):
    currency_name: Optional[str] = Field(None, min_length=1)
    base_rate: Optional[float] = Field(None, gt=0)
    buy_rate: Optional[float] = Field(None, gt=0)
    sell_rate: Optional[float] = Field(None, gt=0)
    markup: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def _at_least_one(self) -> "RateUpdate":
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided for update")
        nulls = sorted(f for f in self.model_fields_set if getattr(self, f) is None)
        if nulls:
            raise ValueError(f"fields cannot be null: {', '.join(nulls)}")
        return self


class RateBulkItem(BaseModel):
    currency_code: CurrencyCode
    base_rate: float = Field(..., gt=0)
    buy_rate: float = Field(..., gt=0)
    sell_rate: float = Field(..., gt=0)


class RateBulkUpdate(BaseModel):
    rates: List[RateBulkItem] = Field(..., min_length=1)

    @field_validator("rates")
    @classmethod
    def _unique_codes(cls, items: List[RateBulkItem]) -> List[RateBulkItem]:
        codes = [i.currency_code for i in items]
        if len(codes) != len(set(codes)):
            raise ValueError("duplicate currency codes in bulk update")
        return items


class RateOut(BaseModel):
    currency_code: str
    currency_name: str
    base_rate: float
    buy_rate: float
    sell_rate: float
    markup: float
    is_active: bool
    last_updated: datetime

    @classmethod
    def from_row(cls, row: dict) -> "RateOut":
        return cls(
            currency_code=row["currency_code"],
            currency_name=row["currency_name"],
            base_rate=row["base_rate"],
            buy_rate=row["buy_rate"],
            sell_rate=row["sell_rate"],
            markup=row["markup"],
            is_active=bool(row["is_active"]),
            last_updated=datetime.fromisoformat(row["last_updated"].replace("Z", "")),
        )


class QuoteRequest(BaseModel):
    currency_code: CurrencyCode
    amount_foreign: float = Field(..., gt=0, le=MAX_FOREIGN_AMOUNT, allow_inf_nan=False)
    product_type: ProductType = "BUY_CURRENCY"
    delivery_type: DeliveryType = "PICKUP"


class QuoteOut(BaseModel):
    currency_code: str
    currency_name: str
    product_type: str
    delivery_type: str
    amount_foreign: float
    exchange_rate: float
    base_amount: float
    commission: float
    taxes: float
    delivery_charge: float
    total_amount: float


class RateAlertIn(BaseModel):
    currency_code: CurrencyCode
    target_rate: float = Field(..., gt=0)
    alert_type: AlertType = "EMAIL"


class RateAlertOut(BaseModel):
    id: int
    currency_code: str
    target_rate: float
    alert_type: str
    is_active: bool
    triggered_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_row(cls, row: dict) -> "RateAlertOut":
        triggered = row.get("triggered_at")
        return cls(
            id=row["id"],
            currency_code=row["currency_code"],
            target_rate=row["target_rate"],
            alert_type=row["alert_type"],
            is_active=bool(row["is_active"]),
            triggered_at=datetime.fromisoformat(triggered.replace("Z", ""))
            if triggered
            else None,
            created_at=datetime.fromisoformat(row["created_at"].replace("Z", "")),
        )
