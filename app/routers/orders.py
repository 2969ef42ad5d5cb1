from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from app.core.security import get_current_user, require_kyc_verified
from app.db.dal import Database
from app.models.constants import OrderStatus
from app.models.order import OrderCreate, OrderOut, OrderPage
from app.models.user import User
from app.services.orders import OrderLedger
from app.services.quote import PricingPolicy, QuoteCalculator

router = APIRouter(prefix="/orders", tags=["orders"])

# Dependencies -----------------------------------------------------


def get_db(request: Request) -> Database:
    return Database(request.app.state.settings.db_path)


def get_ledger(request: Request, db: Database = Depends(get_db)) -> OrderLedger:
    settings = request.app.state.settings
    return OrderLedger(
        db,
        QuoteCalculator(db, PricingPolicy.from_settings(settings)),
        request.app.state.dispatcher,
        order_number_prefix=settings.order_number_prefix,
        max_attempts=settings.order_number_max_attempts,
    )


# Routes -----------------------------------------------------------
@router.post("", response_model=OrderOut, status_code=201, summary="Create an order")
async def create_order(
    payload: OrderCreate,
    user: User = Depends(require_kyc_verified),
    ledger: OrderLedger = Depends(get_ledger),
):
    return OrderOut.from_row(ledger.create_order(user, payload))


@router.get("", response_model=OrderPage, summary="List my orders")
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    user: User = Depends(get_current_user),
    ledger: OrderLedger = Depends(get_ledger),
):
    rows, pagination = ledger.list_orders(user, status=status, page=page, limit=limit)
    return OrderPage(orders=[OrderOut.from_row(r) for r in rows], pagination=pagination)


@router.get("/{order_id}", response_model=OrderOut, summary="Get one order")
async def get_order(
    order_id: int,
    user: User = Depends(get_current_user),
    ledger: OrderLedger = Depends(get_ledger),
):
    return OrderOut.from_row(ledger.get_order(order_id, user))


@router.put("/{order_id}/cancel", response_model=OrderOut, summary="Cancel an order")
async def cancel_order(
    order_id: int,
    user: User = Depends(get_current_user),
    ledger: OrderLedger = Depends(get_ledger),
):
    return OrderOut.from_row(ledger.cancel_order(order_id, user))
