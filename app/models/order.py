from __future__ import annotations
from datetime import date, datetime
import json
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import MAX_FOREIGN_AMOUNT, DeliveryType, OrderStatus, ProductType
from .rates import CurrencyCode


class OrderMetadata(BaseModel):
    """Optional structured details attached to an order.

    purpose: travel purpose as declared by the customer (e.g. "tourism")
    travel_date: planned departure date
    destination_country: ISO country name or code
    traveller_count: number of travellers covered by the order
    """

    model_config = ConfigDict(extra="forbid")

    purpose: Optional[str] = Field(None, max_length=100)
    travel_date: Optional[date] = None
    destination_country: Optional[str] = Field(None, max_length=64)
    traveller_count: Optional[int] = Field(None, ge=1, le=20)


class OrderCreate(BaseModel):
    product_type: ProductType
    currency_code: CurrencyCode
    amount_foreign: float = Field(..., gt=0, le=MAX_FOREIGN_AMOUNT, allow_inf_nan=False)
    address_id: Optional[int] = None
    delivery_type: DeliveryType = "PICKUP"
    notes: Optional[str] = Field(None, max_length=500)
    metadata: OrderMetadata = Field(default_factory=OrderMetadata)


class OrderOut(BaseModel):
    id: int
    order_number: str
    user_id: int
    product_type: str
    currency_code: str
    amount_foreign: float
    exchange_rate: float
    amount_inr: float
    commission: float
    taxes: float
    delivery_charge: float
    total_amount: float
    status: str
    payment_status: str
    address_id: Optional[int] = None
    delivery_type: str
    notes: Optional[str] = None
    metadata: OrderMetadata
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: dict) -> "OrderOut":
        data = dict(row)
        data["metadata"] = parse_metadata(row.get("metadata"))
        data["created_at"] = datetime.fromisoformat(row["created_at"].replace("Z", ""))
        data["updated_at"] = datetime.fromisoformat(row["updated_at"].replace("Z", ""))
        return cls(**data)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        pages = (total + limit - 1) // limit if limit else 0
        return cls(page=page, limit=limit, total=total, pages=pages)


class OrderPage(BaseModel):
    orders: List[OrderOut]
    pagination: Pagination


def parse_metadata(raw: Optional[str]) -> OrderMetadata:
    if not raw:
        return OrderMetadata()
    try:
        return OrderMetadata(**json.loads(raw))
    except (json.JSONDecodeError, TypeError, ValueError):
        return OrderMetadata()
