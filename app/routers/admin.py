"""Admin console API.

Every route requires an ADMIN bearer token. Rate mutations wake the broadcast
channel and evaluate rate alerts (see RateStore).
Every admin write is audited.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from app.core.security import require_admin
from app.db.dal import Database
from app.models.admin import AuditLogOut, AuditLogPage, DashboardOut, DashboardStats
from app.models.constants import OrderStatus
from app.models.offer import OfferCreate, OfferOut, OfferUpdate
from app.models.order import OrderOut, OrderPage, OrderStatusUpdate
from app.models.rates import RateBulkUpdate, RateCreate, RateOut, RateUpdate
from app.models.user import AddressOut, KycUpdate, User, UserDetail
from app.services.alerts import RateAlertService
from app.services.offers import OfferCatalog
from app.services.orders import OrderLedger
from app.services.quote import PricingPolicy, QuoteCalculator
from app.services.rates.store import RateStore
from app.services.reports import AdminReports
from app.services.users import UserDirectory

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def get_db(request: Request) -> Database:
    return Database(request.app.state.settings.db_path)


def get_rate_store(request: Request, db: Database = Depends(get_db)) -> RateStore:
    dispatcher = request.app.state.dispatcher
    return RateStore(
        db,
        dispatcher,
        broadcaster=request.app.state.broadcaster,
        alerts=RateAlertService(db, dispatcher),
    )


def get_ledger(request: Request, db: Database = Depends(get_db)) -> OrderLedger:
    settings = request.app.state.settings
    return OrderLedger(
        db,
        QuoteCalculator(db, PricingPolicy.from_settings(settings)),
        request.app.state.dispatcher,
        order_number_prefix=settings.order_number_prefix,
        max_attempts=settings.order_number_max_attempts,
    )


def get_catalog(request: Request, db: Database = Depends(get_db)) -> OfferCatalog:
    return OfferCatalog(db, request.app.state.dispatcher)


def get_users(request: Request, db: Database = Depends(get_db)) -> UserDirectory:
    return UserDirectory(db, request.app.state.dispatcher)


def get_reports(db: Database = Depends(get_db)) -> AdminReports:
    return AdminReports(db)


# Orders -----------------------------------------------------------
@router.get("/orders", response_model=OrderPage, summary="List all orders")
async def list_all_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    search: Optional[str] = Query(None, max_length=40, description="Order number fragment"),
    ledger: OrderLedger = Depends(get_ledger),
):
    rows, pagination = ledger.list_all(status=status, search=search, page=page, limit=limit)
    return OrderPage(orders=[OrderOut.from_row(r) for r in rows], pagination=pagination)


@router.get("/orders/{order_id}", response_model=OrderOut)
async def get_any_order(
    order_id: int,
    admin: User = Depends(require_admin),
    ledger: OrderLedger = Depends(get_ledger),
):
    return OrderOut.from_row(ledger.get_order(order_id, admin))


@router.put("/orders/{order_id}/status", response_model=OrderOut, summary="Move an order along its lifecycle")
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    admin: User = Depends(require_admin),
    ledger: OrderLedger = Depends(get_ledger),
):
    return OrderOut.from_row(ledger.update_status(order_id, payload.status, admin))


# Rates ------------------------------------------------------------
@router.get("/rates", response_model=List[RateOut], summary="List all rates incl. inactive")
async def list_all_rates(store: RateStore = Depends(get_rate_store)):
    return [RateOut.from_row(r) for r in store.list_rates(active_only=False)]


@router.post("/rates", response_model=RateOut, status_code=201)
async def create_rate(
    payload: RateCreate,
    admin: User = Depends(require_admin),
    store: RateStore = Depends(get_rate_store),
):
    return RateOut.from_row(store.create(payload, admin))


@router.put("/rates", response_model=List[RateOut], summary="Bulk update base/buy/sell rates")
async def bulk_update_rates(
    payload: RateBulkUpdate,
    admin: User = Depends(require_admin),
    store: RateStore = Depends(get_rate_store),
):
    return [RateOut.from_row(r) for r in store.bulk_update(payload, admin)]


@router.put("/rates/{currency_code}", response_model=RateOut)
async def update_rate(
    currency_code: str,
    payload: RateUpdate,
    admin: User = Depends(require_admin),
    store: RateStore = Depends(get_rate_store),
):
    return RateOut.from_row(store.update(currency_code, payload, admin))


@router.delete("/rates/{currency_code}", status_code=204)
async def delete_rate(
    currency_code: str,
    admin: User = Depends(require_admin),
    store: RateStore = Depends(get_rate_store),
):
    store.delete(currency_code, admin)
    return Response(status_code=204)


# Dashboard & audit ------------------------------------------------
@router.get("/dashboard", response_model=DashboardOut, summary="Headline counters and latest orders")
async def dashboard(reports: AdminReports = Depends(get_reports)):
    data = reports.dashboard()
    return DashboardOut(
        stats=DashboardStats(**data["stats"]),
        recent_orders=[OrderOut.from_row(r) for r in data["recent_orders"]],
    )


@router.get("/audit-logs", response_model=AuditLogPage)
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    action: Optional[str] = Query(None, max_length=64),
    user_id: Optional[int] = Query(None),
    reports: AdminReports = Depends(get_reports),
):
    rows, pagination = reports.audit_logs(action=action, user_id=user_id, page=page, limit=limit)
    return AuditLogPage(logs=[AuditLogOut.from_row(r) for r in rows], pagination=pagination)


# Users ------------------------------------------------------------
@router.get("/users/{user_id}", response_model=UserDetail)
async def get_user(user_id: int, users: UserDirectory = Depends(get_users)):
    data = users.detail(user_id)
    return UserDetail(
        user=data["user"],
        addresses=[AddressOut.from_row(a) for a in data["addresses"]],
        recent_orders=[OrderOut.from_row(o) for o in data["recent_orders"]],
    )


@router.put("/users/{user_id}/kyc", response_model=User, summary="Record a KYC review outcome")
async def update_kyc(
    user_id: int,
    payload: KycUpdate,
    admin: User = Depends(require_admin),
    users: UserDirectory = Depends(get_users),
):
    return users.update_kyc(user_id, payload.kyc_status, admin, notes=payload.notes)


# Offers -----------------------------------------------------------
@router.get("/offers", response_model=List[OfferOut], summary="List all offers incl. inactive")
async def list_all_offers(catalog: OfferCatalog = Depends(get_catalog)):
    return [OfferOut.from_row(o) for o in catalog.list_all()]


@router.post("/offers", response_model=OfferOut, status_code=201)
async def create_offer(
    payload: OfferCreate,
    admin: User = Depends(require_admin),
    catalog: OfferCatalog = Depends(get_catalog),
):
    return OfferOut.from_row(catalog.create(payload, admin))


@router.put("/offers/{offer_id}", response_model=OfferOut)
async def update_offer(
    offer_id: int,
    payload: OfferUpdate,
    admin: User = Depends(require_admin),
    catalog: OfferCatalog = Depends(get_catalog),
):
    return OfferOut.from_row(catalog.update(offer_id, payload, admin))


@router.delete("/offers/{offer_id}", status_code=204)
async def delete_offer(
    offer_id: int,
    admin: User = Depends(require_admin),
    catalog: OfferCatalog = Depends(get_catalog),
):
    catalog.delete(offer_id, admin)
    return Response(status_code=204)
