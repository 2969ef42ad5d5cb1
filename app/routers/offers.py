from typing import List

from fastapi import APIRouter, Depends, Request

from app.core.security import get_current_user
from app.db.dal import Database
from app.models.offer import OfferOut, OfferValidateIn, OfferValidationOut
from app.models.user import User
from app.services.offers import OfferEngine

router = APIRouter(prefix="/offers", tags=["offers"])


def get_db(request: Request) -> Database:
    return Database(request.app.state.settings.db_path)


def get_engine(db: Database = Depends(get_db)) -> OfferEngine:
    return OfferEngine(db)


@router.get("", response_model=List[OfferOut], summary="List currently valid offers")
async def list_offers(engine: OfferEngine = Depends(get_engine)):
    return [OfferOut.from_row(o) for o in engine.list_active()]


@router.get("/{code}", response_model=OfferOut, summary="Get an offer by code")
async def get_offer(code: str, engine: OfferEngine = Depends(get_engine)):
    return OfferOut.from_row(engine.get(code))


@router.post("/validate", response_model=OfferValidationOut, summary="Validate a code against an amount")
async def validate_offer(
    payload: OfferValidateIn,
    _: User = Depends(get_current_user),
    engine: OfferEngine = Depends(get_engine),
):
    return engine.validate(payload.code, payload.amount).as_dict()
