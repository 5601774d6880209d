"""
FastAPI dependencies: the injected database context and the
token-checking guards.
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from config import Settings, get_settings
from database import Database
from errors import AppError, Forbidden, Unauthorized
from security import TokenData, decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_db(request: Request) -> Database:
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise AppError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return database


def get_optional_principal(
    token: Optional[str] = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings),
) -> Optional[TokenData]:
    if not token:
        return None
    return decode_access_token(token, settings)


def get_current_principal(principal: Optional[TokenData] = Depends(get_optional_principal)) -> TokenData:
    if principal is None:
        raise Unauthorized("Missing or invalid authorization header")
    return principal


def require_role(*roles: str):
    def role_dep(principal: TokenData = Depends(get_current_principal)) -> TokenData:
        if principal.role not in roles:
            raise Forbidden("Insufficient permissions")
        return principal
    return role_dep
