"""Password login and the signed session cookie."""
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from taskmind import crud
from taskmind.config import get_settings
from taskmind.database import User, get_db

logger = logging.getLogger(__name__)

COOKIE_NAME = "taskmind_session"
ONE_YEAR_SECONDS = 365 * 24 * 60 * 60

DEV_USER_EMAIL = "dev@local.test"
DEV_USER_NAME = "Dev User"

_PBKDF2_ITERATIONS = 200_000


def hash_password(password: str) -> str:
    """Hash a password for storage."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), _PBKDF2_ITERATIONS)
    return f"{salt}:{digest.hex()}"


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Verify a password against its hash."""
    if not password_hash or ":" not in password_hash:
        return False
    salt, stored = password_hash.split(":", 1)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), _PBKDF2_ITERATIONS)
    return hmac.compare_digest(digest.hex(), stored)


def _sign(payload: str, secret: str) -> str:
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def create_session_token(user_id: int, issued_at: Optional[int] = None) -> str:
    issued_at = int(time.time()) if issued_at is None else issued_at
    payload = f"{user_id}.{issued_at}"
    return f"{payload}.{_sign(payload, get_settings().secret_key)}"


def read_session_token(token: Optional[str], max_age: int = ONE_YEAR_SECONDS) -> Optional[int]:
    """User id from a session token, or None if it is malformed, forged or expired."""
    if not token:
        return None
    parts = token.split(".")
    if len(parts) != 3 or not all(p.isascii() and p.isdigit() for p in parts[:2]):
        return None
    payload = f"{parts[0]}.{parts[1]}"
    # cookies arrive latin-1 decoded; compare bytes so odd characters just fail the check
    signature = parts[2].encode("utf-8", "surrogateescape")
    if not hmac.compare_digest(_sign(payload, get_settings().secret_key).encode(), signature):
        return None
    if int(parts[1]) + max_age < time.time():
        return None
    return int(parts[0])


def persist_session(response: Response, user_id: int) -> None:
    response.set_cookie(
        COOKIE_NAME,
        create_session_token(user_id),
        max_age=ONE_YEAR_SECONDS,
        httponly=True,
        samesite="lax",
        secure=get_settings().cookie_secure,
    )


def clear_session(response: Response) -> None:
    response.delete_cookie(COOKIE_NAME, httponly=True, samesite="lax")


def role_for(email: str) -> str:
    owner = get_settings().owner_email
    return "admin" if owner and email.strip().lower() == owner else "user"


def register_user(db: Session, name: str, email: str, password: str) -> Optional[User]:
    """Create an email/password user; None when the email is taken."""
    if crud.get_user_by_email(db, email):
        return None
    return crud.create_user(
        db,
        email=email,
        name=name,
        password_hash=hash_password(password),
        login_method="email",
        role=role_for(email),
    )


def login_user(db: Session, email: str, password: str) -> Optional[User]:
    user = crud.get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        return None
    return crud.touch_sign_in(db, user)


def _dev_user(db: Session) -> User:
    user = crud.get_user_by_email(db, DEV_USER_EMAIL)
    if user is None:
        logger.info('Creating development user %s', DEV_USER_EMAIL)
        user = crud.create_user(
            db,
            email=DEV_USER_EMAIL,
            name=DEV_USER_NAME,
            password_hash=None,
            login_method="dev",
            role=role_for(DEV_USER_EMAIL),
        )
    return user


def get_current_user(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    user_id = read_session_token(request.cookies.get(COOKIE_NAME))
    user = crud.get_user(db, user_id) if user_id is not None else None
    if user is None and get_settings().dev_login:
        user = _dev_user(db)
    return user


def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
