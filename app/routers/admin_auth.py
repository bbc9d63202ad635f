from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import get_current_admin_user
from app.models.admin_user import AdminUser
from app.services.admin_auth import authenticate_admin, end_admin_session, start_admin_session

router = APIRouter(prefix="/api/admin/auth", tags=["admin-auth"])


class AdminLoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


def _admin_to_dict(user: AdminUser) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "active": bool(user.active),
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
    }


@router.post("/login")
def admin_login(payload: AdminLoginPayload, response: Response, db: Session = Depends(get_db)):
    user = authenticate_admin(db, payload.email, payload.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    start_admin_session(response, user)
    return _admin_to_dict(user)


@router.post("/logout")
def admin_logout(response: Response):
    end_admin_session(response)
    return {"ok": True}


@router.get("/me")
def admin_me(user: AdminUser = Depends(get_current_admin_user)):
    return _admin_to_dict(user)
