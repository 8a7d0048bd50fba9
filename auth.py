import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Header
from sqlalchemy.orm import Session

import models
from config import AUTH_TOKEN_MAX_AGE, get_auth_secret
from database import get_db
from errors import Forbidden, Unauthenticated

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"


def hash_password(pw: str) -> str:
    return hashlib.sha256(pw.encode()).hexdigest()


def sign_token(user_id: str, ttl_seconds: int = AUTH_TOKEN_MAX_AGE) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + timedelta(seconds=ttl_seconds)}
    return jwt.encode(payload, get_auth_secret(), algorithm=_ALGORITHM)


def authenticate(db: Session, email: str, password: str) -> Optional[models.User]:
    u = db.query(models.User).filter(models.User.email == email).first()
    if not u or not u.is_active or u.password != hash_password(password):
        logger.warning(f"Login failed for {email}")
        return None
    return u


def user_from_token(db: Session, token: Optional[str]) -> models.User:
    if not token:
        raise Unauthenticated("Not authenticated")
    try:
        payload = jwt.decode(token, get_auth_secret(), algorithms=[_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token has expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Not authenticated")

    u = db.get(models.User, payload.get("sub"))
    if not u or not u.is_active:
        raise Unauthenticated("Not authenticated")
    return u


def get_current_user(authorization: Optional[str] = Header(None),
                     db: Session = Depends(get_db)) -> models.User:
    token = None
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer":
            token = value.strip()
    return user_from_token(db, token)


def require_faculty(user: models.User = Depends(get_current_user)) -> models.User:
    if user.role != "faculty":
        raise Forbidden("Forbidden")
    return user


def require_student(user: models.User = Depends(get_current_user)) -> models.User:
    if user.role != "student":
        raise Forbidden("Forbidden")
    return user
