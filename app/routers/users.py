from typing import List

from fastapi import APIRouter, Depends, Request

from app.core.security import get_current_user
from app.db.dal import Database
from app.models.user import AddressIn, AddressOut, User
from app.services.users import UserDirectory

router = APIRouter(prefix="/users", tags=["users"])


def get_db(request: Request) -> Database:
    return Database(request.app.state.settings.db_path)


def get_users(request: Request, db: Database = Depends(get_db)) -> UserDirectory:
    return UserDirectory(db, request.app.state.dispatcher)


@router.get("/profile", response_model=User, summary="Current user incl. KYC status")
async def profile(user: User = Depends(get_current_user)):
    return user


@router.get("/addresses", response_model=List[AddressOut])
async def list_addresses(
    user: User = Depends(get_current_user),
    users: UserDirectory = Depends(get_users),
):
    return [AddressOut.from_row(a) for a in users.addresses(user)]


@router.post("/addresses", response_model=AddressOut, status_code=201)
async def add_address(
    payload: AddressIn,
    user: User = Depends(get_current_user),
    users: UserDirectory = Depends(get_users),
):
    return AddressOut.from_row(users.add_address(user, payload))
