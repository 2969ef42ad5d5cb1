from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .constants import KycStatus
from .order import OrderOut


class User(BaseModel):
    """Authenticated caller as resolved from the bearer token."""

    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: str
    kyc_status: str
    is_active: bool

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_row(cls, row: dict) -> "User":
        return cls(
            id=row["id"],
            email=row["email"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            phone=row.get("phone"),
            role=row["role"],
            kyc_status=row["kyc_status"],
            is_active=bool(row["is_active"]),
        )


class AddressIn(BaseModel):
    line1: str = Field(..., min_length=1, max_length=200)
    line2: Optional[str] = Field(None, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    pincode: str = Field(..., pattern=r"^\d{6}$")


class AddressOut(BaseModel):
    id: int
    line1: str
    line2: Optional[str] = None
    city: str
    state: str
    pincode: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: dict) -> "AddressOut":
        return cls(
            id=row["id"],
            line1=row["line1"],
            line2=row.get("line2"),
            city=row["city"],
            state=row["state"],
            pincode=row["pincode"],
            created_at=datetime.fromisoformat(row["created_at"].replace("Z", "")),
        )


class KycUpdate(BaseModel):
    kyc_status: KycStatus
    notes: Optional[str] = Field(None, max_length=500)


class UserDetail(BaseModel):
    """Admin view of a customer with addresses and latest orders."""

    user: User
    addresses: List[AddressOut]
    recent_orders: List[OrderOut]
