# app/deps.py
from __future__ import annotations

import logging
from typing import Iterable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.admin_user import ADMIN_ROLES, AdminUser
from app.models.user import User
from app.services.admin_auth import ADMIN_SESSION_COOKIE, decode_admin_session, load_session_admin
from app.services.auth import decode_access_token, extract_user_id

bearer_scheme = HTTPBearer(auto_error=False)

logger = logging.getLogger(__name__)


def get_cart_session_id(request: Request) -> str:
    session_id = getattr(request.state, "cart_session_id", None)
    if not session_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No session found")
    return session_id


def _load_active_user(db: Session, token: str) -> Optional[User]:
    try:
        payload = decode_access_token(token)
    except ValueError:
        return None
    user_id = extract_user_id(payload)
    if user_id is None:
        return None
    return db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()


def get_optional_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[int]:
    """Usuário autenticado ou None (guest). Token inválido vira guest."""
    if credentials is None:
        return None
    user = _load_active_user(db, credentials.credentials)
    if user is None:
        logger.info("ignoring invalid bearer token on optional-auth route path=%s", request.url.path)
        return None
    request.state.user_id = user.id
    return user.id


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = _load_active_user(db, credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    request.state.user_id = user.id
    return user


def _normalize_admin_role(role: str | None) -> str:
    return (role or "").strip().lower()


def _log_access_denied(*, reason: str, user: AdminUser, request: Request) -> None:
    endpoint = f"{request.method} {request.url.path}"
    logger.warning(
        "Access denied (%s): user_id=%s user_role=%s endpoint=%s",
        reason,
        getattr(user, "id", None),
        getattr(user, "role", None),
        endpoint,
    )


def get_current_admin_user(
    request: Request,
    db: Session = Depends(get_db),
) -> AdminUser:
    token = request.cookies.get(ADMIN_SESSION_COOKIE)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin not authenticated")

    session = decode_admin_session(token)
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired")

    user = load_session_admin(db, session)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin not found")

    return user


def require_admin_user(
    request: Request,
    db: Session = Depends(get_db),
) -> AdminUser:
    return get_current_admin_user(request, db)


def require_role(roles: Iterable[str]):
    allowed = {_normalize_admin_role(role) for role in roles}
    unknown = allowed.difference(ADMIN_ROLES)
    if unknown:
        raise ValueError(f"Unknown admin roles: {sorted(unknown)}")
    if "admin" in allowed or "owner" in allowed:
        allowed.update({"admin", "owner"})

    def _dependency(
        request: Request,
        user: AdminUser = Depends(require_admin_user),
    ) -> AdminUser:
        if _normalize_admin_role(user.role) not in allowed:
            _log_access_denied(reason="role_denied", user=user, request=request)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user

    return _dependency
