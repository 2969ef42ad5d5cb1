from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .order import Pagination


class PaymentOrderIn(BaseModel):
    order_id: int


class PaymentOrderOut(BaseModel):
    gateway_order_id: str
    key_id: Optional[str] = None
    amount: int = Field(..., description="Amount in paise")
    currency: str
    transaction_id: int


class PaymentVerifyIn(BaseModel):
    gateway_order_id: str = Field(..., min_length=1)
    gateway_payment_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)


class TransactionOut(BaseModel):
    id: int
    order_id: int
    order_number: Optional[str] = None
    amount: float
    currency: str
    payment_gateway: str
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    status: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: dict) -> "TransactionOut":
        return cls(
            id=row["id"],
            order_id=row["order_id"],
            order_number=row.get("order_number"),
            amount=row["amount"],
            currency=row["currency"],
            payment_gateway=row["payment_gateway"],
            gateway_order_id=row["gateway_order_id"],
            gateway_payment_id=row.get("gateway_payment_id"),
            status=row["status"],
            created_at=datetime.fromisoformat(row["created_at"].replace("Z", "")),
        )


class TransactionPage(BaseModel):
    transactions: List[TransactionOut]
    pagination: Pagination
