from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from .order import OrderOut, Pagination


class DashboardStats(BaseModel):
    total_users: int
    total_orders: int
    pending_orders: int
    completed_orders: int
    total_revenue: float
    pending_kyc: int


class DashboardOut(BaseModel):
    stats: DashboardStats
    recent_orders: List[OrderOut]


class AuditLogOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    action: str
    entity: str
    entity_id: str
    metadata: Dict[str, Any]
    created_at: datetime

    @classmethod
    def from_row(cls, row: dict) -> "AuditLogOut":
        data = dict(row)
        data["created_at"] = datetime.fromisoformat(row["created_at"].replace("Z", ""))
        return cls(**data)


class AuditLogPage(BaseModel):
    logs: List[AuditLogOut]
    pagination: Pagination
