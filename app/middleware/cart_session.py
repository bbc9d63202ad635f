from __future__ import annotations

import secrets
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import (
    CART_SESSION_COOKIE,
    CART_SESSION_COOKIE_SECURE,
    CART_SESSION_MAX_AGE_SECONDS,
    CART_SESSION_SECRET,
)
from app.core.request_context import set_request_context

CART_SESSION_SALT = "cart-session"


def _serializer() -> URLSafeTimedSerializer:
    if not CART_SESSION_SECRET:
        raise RuntimeError("CART_SESSION_SECRET not configured.")
    return URLSafeTimedSerializer(CART_SESSION_SECRET, salt=CART_SESSION_SALT)


def new_session_id() -> str:
    return secrets.token_hex(32)


def sign_session_id(session_id: str) -> str:
    return _serializer().dumps(session_id)


def read_session_id(token: str | None) -> Optional[str]:
    if not token:
        return None
    try:
        # SignatureExpired herda de BadSignature
        value = _serializer().loads(token, max_age=CART_SESSION_MAX_AGE_SECONDS)
    except BadSignature:
        return None
    if not isinstance(value, str) or not value:
        return None
    return value


class CartSessionMiddleware(BaseHTTPMiddleware):
    """Issues the signed, HTTP-only cart session cookie used by cart and checkout."""

    async def dispatch(self, request, call_next):
        session_id = read_session_id(request.cookies.get(CART_SESSION_COOKIE))
        issued = session_id is None
        if issued:
            session_id = new_session_id()

        request.state.cart_session_id = session_id
        set_request_context(session_id=session_id)

        response = await call_next(request)
        if issued:
            response.set_cookie(
                key=CART_SESSION_COOKIE,
                value=sign_session_id(session_id),
                max_age=CART_SESSION_MAX_AGE_SECONDS,
                httponly=True,
                samesite="lax",
                secure=CART_SESSION_COOKIE_SECURE,
                path="/",
            )
        return response
