from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

import settings
from schemas import Role
from store import Store

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


class Token(BaseModel):
    access_token: str
    token_type: str


class CurrentUser(BaseModel):
    id: str
    email: str
    role: Role = Role.CUSTOMER
    name: Optional[str] = None


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: timedelta | None = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_blobs(request: Request):
    return request.app.state.blobs


def get_optional_user(request: Request, token: Optional[str] = Depends(oauth2_scheme),
                            store: Store = Depends(get_store)) -> Optional[CurrentUser]:
    """Resolve the caller from a bearer token or the session cookie, if any."""
    token = token or request.cookies.get(settings.SESSION_COOKIE)
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    user_id: str | None = payload.get("sub")
    if user_id is None:
        return None
    user = store.get_user(user_id)
    if user is None:
        return None
    # The profile record decides the role; the token claim is only a fallback
    profile = store.get_profile(user_id)
    role = profile.role if profile else payload.get("role") or Role.CUSTOMER
    return CurrentUser(id=user["id"], email=user["email"], role=role, name=profile.name if profile else None)


async def get_current_user(current: Optional[CurrentUser] = Depends(get_optional_user)) -> CurrentUser:
    if current is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current


async def get_current_admin(current: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if current.role != Role.ADMIN:
        raise HTTPException(status_code=403, detail="Admins only")
    return current
