"""
Admin reporting routes over the payment store.

Read-only; every route requires a token carrying the admin role.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_admin_id, get_payment_service
from application.services.payment_service import PaymentApplicationService
from core.response import paginated_response, success_response


router = APIRouter(prefix="/admin/payments", tags=["Admin"])


@router.get("", summary="List all payments")
async def list_all_payments(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    event_id: Optional[str] = Query(None, alias="eventId"),
    _admin_id: str = Depends(get_current_admin_id),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    items, total = await service.list_all_payments(skip=(page - 1) * size, limit=size, event_id=event_id)
    return paginated_response(
        items=[item.model_dump(mode="json") for item in items],
        total=total,
        page=page,
        size=size,
    )


@router.get("/stats", summary="Payment statistics")
async def payment_stats(
    event_id: Optional[str] = Query(None, alias="eventId"),
    _admin_id: str = Depends(get_current_admin_id),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    stats = await service.payment_stats(event_id)
    return success_response(data=stats.model_dump(mode="json"))
