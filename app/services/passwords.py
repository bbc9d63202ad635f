from __future__ import annotations

import bcrypt


# bcrypt só considera até 72 bytes; bcrypt>=5 levanta erro acima disso
def _normalize_password_for_bcrypt(password: str) -> bytes:
    return (password or "").encode("utf-8")[:72]


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(_normalize_password_for_bcrypt(password), bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_normalize_password_for_bcrypt(password), password_hash.encode("utf-8"))
    except ValueError:
        return False
