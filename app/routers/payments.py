from fastapi import APIRouter, Depends, Query, Request

from app.core.security import get_current_user
from app.db.dal import Database
from app.models.order import OrderOut
from app.models.payment import (
    PaymentOrderIn,
    PaymentOrderOut,
    PaymentVerifyIn,
    TransactionOut,
    TransactionPage,
)
from app.models.user import User
from app.services.payments import LocalGateway, PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


def get_db(request: Request) -> Database:
    return Database(request.app.state.settings.db_path)


def get_payment_service(request: Request, db: Database = Depends(get_db)) -> PaymentService:
    settings = request.app.state.settings
    gateway = getattr(request.app.state, "payment_gateway", None) or LocalGateway()
    return PaymentService(
        db,
        request.app.state.dispatcher,
        gateway,
        key_id=settings.payment_key_id,
        key_secret=settings.payment_key_secret,
    )


@router.post("/create-order", response_model=PaymentOrderOut, status_code=201)
async def create_payment_order(
    payload: PaymentOrderIn,
    user: User = Depends(get_current_user),
    svc: PaymentService = Depends(get_payment_service),
):
    return svc.create_payment_order(payload.order_id, user)


@router.post("/verify", response_model=OrderOut, summary="Verify a gateway payment signature")
async def verify_payment(
    payload: PaymentVerifyIn,
    user: User = Depends(get_current_user),
    svc: PaymentService = Depends(get_payment_service),
):
    order = svc.verify_payment(
        payload.gateway_order_id, payload.gateway_payment_id, payload.signature, user
    )
    return OrderOut.from_row(order)


@router.get("/transactions", response_model=TransactionPage)
async def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    svc: PaymentService = Depends(get_payment_service),
):
    rows, pagination = svc.list_transactions(user, page=page, limit=limit)
    return TransactionPage(
        transactions=[TransactionOut.from_row(r) for r in rows], pagination=pagination
    )
