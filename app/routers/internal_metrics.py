from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.metrics import request_metrics
from app.deps import require_role
from app.models.admin_user import AdminUser

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])
_admin_only = require_role(["admin"])


@router.get("")
def storefront_metrics(_user: AdminUser = Depends(_admin_only)):
    return {"endpoints": request_metrics.snapshot(), "counters": request_metrics.counters()}


@router.post("/reset")
def reset_storefront_metrics(_user: AdminUser = Depends(_admin_only)):
    request_metrics.reset()
    return {"ok": True}
