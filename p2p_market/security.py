# p2p_market/security.py
# Password hashing + JWT. get_current_user is the identity collaborator every
# mutating route depends on; the id it yields is trusted downstream.

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from jose import JWTError, jwt
from passlib.context import CryptContext

from p2p_market.config import project_rules as R
from p2p_market.database import get_db
from p2p_market import models

logger = logging.getLogger(__name__)

# -----------------------------------------------------
# 🔑 password hashing
# -----------------------------------------------------
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=R.BCRYPT_ROUNDS)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


# -----------------------------------------------------
# 🪙 tokens
# -----------------------------------------------------
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=R.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, R.JWT_SECRET, algorithm=R.JWT_ALGORITHM)


def decode_user_id(token: str) -> int:
    """Token → user id. Raises JWTError on a bad signature, expiry or payload."""
    payload = jwt.decode(token, R.JWT_SECRET, algorithms=[R.JWT_ALGORITHM])
    sub = payload.get("sub")
    if sub is None:
        raise JWTError("token has no subject")
    try:
        return int(sub)
    except (TypeError, ValueError) as e:
        raise JWTError(f"invalid subject: {sub!r}") from e


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(oauth2_scheme),
) -> models.User:
    if not token:
        raise _unauthorized("Not authenticated")

    try:
        user_id = decode_user_id(token)
    except JWTError:
        raise _unauthorized("Invalid token")

    user = db.get(models.User, user_id)
    if user is None:
        logger.warning("token for unknown user: user_id=%s", user_id)
        raise _unauthorized("User no longer exists")
    return user
