"""Admin back-office sessions: signed cookie carrying user id, role and expiry."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Response
from itsdangerous import BadSignature, URLSafeTimedSerializer
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import (
    ADMIN_SESSION_COOKIE_DOMAIN,
    ADMIN_SESSION_COOKIE_SAMESITE,
    ADMIN_SESSION_COOKIE_SECURE,
    ADMIN_SESSION_MAX_AGE_SECONDS,
    ADMIN_SESSION_SECRET,
)
from app.models.admin_user import AdminUser
from app.services.passwords import hash_password, verify_password

logger = logging.getLogger(__name__)

ADMIN_SESSION_COOKIE = "admin_session"
ADMIN_SESSION_SALT = "admin-session"


@dataclass(frozen=True)
class AdminSession:
    user_id: int
    role: str
    expires_at: int


def _serializer() -> URLSafeTimedSerializer:
    if not ADMIN_SESSION_SECRET:
        raise RuntimeError("ADMIN_SESSION_SECRET not configured.")
    return URLSafeTimedSerializer(ADMIN_SESSION_SECRET, salt=ADMIN_SESSION_SALT)


def create_admin_session(payload: Dict[str, Any]) -> str:
    payload = {"exp": int(time.time()) + ADMIN_SESSION_MAX_AGE_SECONDS, **payload}
    return _serializer().dumps(payload)


def decode_admin_session(token: str) -> Optional[AdminSession]:
    """Sessão válida ou None (assinatura, idade do cookie e `exp` conferidos)."""
    try:
        # SignatureExpired herda de BadSignature
        payload = _serializer().loads(token, max_age=ADMIN_SESSION_MAX_AGE_SECONDS)
    except BadSignature:
        return None
    if not isinstance(payload, dict):
        return None
    try:
        session = AdminSession(
            user_id=int(payload["user_id"]),
            role=str(payload.get("role") or ""),
            expires_at=int(payload["exp"]),
        )
    except (KeyError, TypeError, ValueError):
        return None
    if session.expires_at < int(time.time()):
        return None
    return session


def authenticate_admin(db: Session, email: str, password: str) -> Optional[AdminUser]:
    normalized_email = (email or "").strip().lower()
    user = db.query(AdminUser).filter(func.lower(AdminUser.email) == normalized_email).first()
    if user is None or not user.active or not verify_password(password, user.password_hash):
        logger.warning("[AUTH] admin login failed email=%s", normalized_email)
        return None
    try:
        user.last_login_at = datetime.utcnow()
        db.commit()
        db.refresh(user)
    except Exception:
        db.rollback()
        raise
    logger.info("[AUTH] admin login user_id=%s role=%s", user.id, user.role)
    return user


def load_session_admin(db: Session, session: AdminSession) -> Optional[AdminUser]:
    return db.query(AdminUser).filter(AdminUser.id == session.user_id, AdminUser.active.is_(True)).first()


def _cookie_options() -> dict[str, Any]:
    samesite = ADMIN_SESSION_COOKIE_SAMESITE
    # Browsers rejeitam SameSite=None sem Secure.
    if samesite == "none" and not ADMIN_SESSION_COOKIE_SECURE:
        samesite = "lax"
    return {
        "domain": ADMIN_SESSION_COOKIE_DOMAIN,
        "httponly": True,
        "samesite": samesite,
        "path": "/",
        "secure": ADMIN_SESSION_COOKIE_SECURE,
    }


def start_admin_session(response: Response, user: AdminUser) -> None:
    response.set_cookie(
        key=ADMIN_SESSION_COOKIE,
        value=create_admin_session({"user_id": user.id, "role": user.role}),
        max_age=ADMIN_SESSION_MAX_AGE_SECONDS,
        **_cookie_options(),
    )


def end_admin_session(response: Response) -> None:
    response.delete_cookie(key=ADMIN_SESSION_COOKIE, **_cookie_options())


def _password_looks_hashed(password: str) -> bool:
    return password.startswith(("$2a$", "$2b$", "$2y$"))


def bootstrap_admin(
    db: Session, *, email: str, password: str, name: str, role: str = "owner"
) -> tuple[AdminUser, bool]:
    """Garante um admin inicial; hashes bcrypt prontos são gravados como vieram."""
    email = email.strip().lower()
    existing = db.query(AdminUser).filter(func.lower(AdminUser.email) == email).first()
    if existing is not None:
        return existing, False

    admin = AdminUser(
        email=email,
        name=name,
        password_hash=password if _password_looks_hashed(password) else hash_password(password),
        role=role,
        active=True,
    )
    try:
        db.add(admin)
        db.commit()
        db.refresh(admin)
    except Exception:
        db.rollback()
        raise
    return admin, True
