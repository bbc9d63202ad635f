from __future__ import annotations

from typing import Any, Dict, Optional

from jose import JWTError, jwt

from app.core.config import JWT_ALGORITHM, JWT_SECRET_KEY


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Retorna o payload do JWT ou levanta ValueError se inválido.
    Os tokens são emitidos pelo provedor de identidade; aqui só validamos.
    """
    if not JWT_SECRET_KEY:
        raise ValueError("JWT_SECRET_KEY not configured")
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        raise ValueError("Invalid or expired token") from e


def extract_user_id(payload: Dict[str, Any]) -> Optional[int]:
    """Aceita `sub` (padrão JWT) ou `user_id`, como int ou string numérica."""
    raw = payload.get("sub", None)
    if raw is None:
        raw = payload.get("user_id", None)

    if raw is None:
        return None

    if isinstance(raw, int):
        return raw

    if isinstance(raw, str):
        raw = raw.strip()
        if raw.isdigit():
            return int(raw)

    return None
