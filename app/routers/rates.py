from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Request, Response

from app.db.dal import Database
from app.core.security import get_current_user
from app.models.rates import QuoteOut, QuoteRequest, RateAlertIn, RateAlertOut, RateOut
from app.models.user import User
from app.services.alerts import RateAlertService
from app.services.quote import PricingPolicy, QuoteCalculator

"""Public rate endpoints.

    - GET  /rates                  -> active rates ordered by name
    - GET  /rates/{code}           -> single active rate
    - POST /rates/calculate        -> itemized quote (no persistence)
    - POST /rates/alerts           -> register a target-rate alert
    - GET  /rates/alerts/mine      -> caller's alerts
    - DELETE /rates/alerts/{id}    -> remove own alert
"""

router = APIRouter(prefix="/rates", tags=["rates"])


def get_db(request: Request) -> Database:
    return Database(request.app.state.settings.db_path)


def get_calculator(request: Request, db: Database = Depends(get_db)) -> QuoteCalculator:
    return QuoteCalculator(db, PricingPolicy.from_settings(request.app.state.settings))


def get_alert_service(request: Request, db: Database = Depends(get_db)) -> RateAlertService:
    return RateAlertService(db, request.app.state.dispatcher)


@router.get("", response_model=List[RateOut], summary="List active exchange rates")
async def list_rates(db: Database = Depends(get_db)):
    return [RateOut.from_row(r) for r in db.list_rates(active_only=True)]


@router.post("/calculate", response_model=QuoteOut, summary="Price a prospective order")
async def calculate(
    payload: QuoteRequest, calculator: QuoteCalculator = Depends(get_calculator)
):
    quote = calculator.quote(
        payload.currency_code,
        payload.amount_foreign,
        payload.product_type,
        payload.delivery_type,
    )
    return quote.as_dict()


@router.post(
    "/alerts", response_model=RateAlertOut, status_code=201, summary="Create a rate alert"
)
async def create_alert(
    payload: RateAlertIn,
    user: User = Depends(get_current_user),
    svc: RateAlertService = Depends(get_alert_service),
):
    return RateAlertOut.from_row(svc.create(user, payload))


@router.get("/alerts/mine", response_model=List[RateAlertOut], summary="List my rate alerts")
async def my_alerts(
    user: User = Depends(get_current_user),
    svc: RateAlertService = Depends(get_alert_service),
):
    return [RateAlertOut.from_row(r) for r in svc.list_for(user)]


@router.delete("/alerts/{alert_id}", status_code=204, summary="Delete a rate alert")
async def delete_alert(
    alert_id: int,
    user: User = Depends(get_current_user),
    svc: RateAlertService = Depends(get_alert_service),
):
    svc.delete(alert_id, user)
    return Response(status_code=204)


@router.get("/{currency_code}", response_model=RateOut, summary="Get one active rate")
async def get_rate(currency_code: str, calculator: QuoteCalculator = Depends(get_calculator)):
    return RateOut.from_row(calculator.active_rate(currency_code))
