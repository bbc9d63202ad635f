from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.services.errors import (
    DiscountAlreadyRedeemedError,
    DiscountCodeExistsError,
    InsufficientStockError,
    NotFoundError,
    StorefrontError,
)

logger = logging.getLogger(__name__)


def stock_http_exception(
    exc: InsufficientStockError,
    *,
    out_of_stock_message: str,
    insufficient_message: str,
) -> HTTPException:
    if exc.out_of_stock:
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": out_of_stock_message, "size_id": exc.size_id},
        )
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "error": insufficient_message,
            "size_id": exc.size_id,
            "available_stock": exc.available,
            "requested_quantity": exc.requested,
        },
    )


def domain_http_exception(exc: StorefrontError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
    if isinstance(exc, (DiscountAlreadyRedeemedError, DiscountCodeExistsError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    # erros de domínio que escaparam do router viram 4xx, nunca 500
    http_exc = domain_http_exception(exc)
    logger.warning(
        "unhandled storefront error %s on %s %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        extra={"status_code": http_exc.status_code},
    )
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})
