"""Bearer-token authentication and one-time login codes."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
import pyotp
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from . import models
from .database import get_db

ALGORITHM = "HS256"
# one-time codes stay valid for a 10 minute window
CODE_INTERVAL = 600

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/login", auto_error=False)


def _secret_key() -> str:
    return os.getenv("SECRET_KEY", "change-me")


def create_access_token(user: models.User, expires_delta: timedelta | None = None) -> str:
    minutes = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=minutes))
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "name": user.name,
        "roles": list(user.roles or []),
        "exp": expire,
    }
    return jwt.encode(payload, _secret_key(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Return the token claims, or None when the token is invalid or expired."""

    try:
        return jwt.decode(token, _secret_key(), algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None


def _user_from_token(db: Session, token: str) -> models.User | None:
    claims = decode_access_token(token)
    if not claims or "sub" not in claims:
        return None
    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError:
        return None
    return db.get(models.User, user_id)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    user = _user_from_token(db, token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_optional_user(
    token: str | None = Depends(optional_oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User | None:
    if not token:
        return None
    return _user_from_token(db, token)


def require_admin(user: models.User = Depends(get_current_user)) -> models.User:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return user


def _totp(user: models.User) -> pyotp.TOTP:
    return pyotp.TOTP(user.totp_secret, interval=CODE_INTERVAL)


def issue_login_code(db: Session, user: models.User) -> str:
    """Return the current one-time code for ``user``, provisioning a secret if needed."""

    if not user.totp_secret:
        user.totp_secret = pyotp.random_base32()
        db.add(user)
        db.commit()
    return _totp(user).now()


def verify_login_code(user: models.User, code: str) -> bool:
    if not user.totp_secret:
        return False
    return _totp(user).verify(code, valid_window=1)
