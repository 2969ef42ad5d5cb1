"""Bearer-token identity.

Tokens are opaque strings stored on `users.api_token`; issuing them belongs to
the authentication service. These dependencies resolve the caller and gate
admin and KYC-restricted routes.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.db.dal import Database
from app.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"}
    )


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Missing bearer token")
    db = Database(request.app.state.settings.db_path)
    row = db.get_user_by_token(credentials.credentials)
    if not row:
        raise _unauthorized("Invalid token")
    user = User.from_row(row)
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def require_kyc_verified(user: User = Depends(get_current_user)) -> User:
    if user.kyc_status != "VERIFIED":
        raise HTTPException(
            status_code=403, detail="KYC verification required before placing orders"
        )
    return user
