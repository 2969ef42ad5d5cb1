"""Admin read models: dashboard counters and the audit trail."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from app.db.dal import Database
from app.models.constants import DASHBOARD_PENDING_STATUSES
from app.models.order import Pagination
from app.services.money import round2

RECENT_ORDER_LIMIT = 10


class AdminReports:
    def __init__(self, db: Database):
        self.db = db

    def dashboard(self) -> Dict[str, Any]:
        stats = self.db.dashboard_stats(sorted(DASHBOARD_PENDING_STATUSES))
        stats["total_revenue"] = round2(stats["total_revenue"])
        recent, _ = self.db.list_orders(limit=RECENT_ORDER_LIMIT)
        return {"stats": stats, "recent_orders": recent}

    def audit_logs(
        self,
        action: Optional[str] = None,
        user_id: Optional[int] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[Dict[str, Any]], Pagination]:
        rows, total = self.db.page_audit_logs(
            action=action, user_id=user_id, offset=(page - 1) * limit, limit=limit
        )
        return rows, Pagination.build(page, limit, total)
