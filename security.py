"""
Password hashing and session tokens.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from config import Settings
from errors import Unauthorized

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class TokenData(BaseModel):
    id: str
    role: str
    store_id: Optional[str] = None


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def create_access_token(data: TokenData, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.model_dump(exclude_none=True)
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> TokenData:
    # expired tokens fail here too (ExpiredSignatureError is a JWTError)
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise Unauthorized("Invalid or expired token")
    if not payload.get("id") or not payload.get("role"):
        raise Unauthorized("Invalid or expired token")
    return TokenData(id=payload["id"], role=payload["role"], store_id=payload.get("store_id"))
