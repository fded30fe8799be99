"""
Payments API routes.

Thin layer over PaymentApplicationService; every response uses the unified
envelope and errors are mapped by the global exception handlers.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_user_id, get_payment_service
from application.dtos.payments import CreateOrderRequest, CreateSessionRequest, VerifyPaymentRequest
from application.services.payment_service import PaymentApplicationService
from core.response import paginated_response, success_response


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/orders", summary="Create a checkout order for a team")
async def create_order(
    payload: CreateOrderRequest,
    user_id: str = Depends(get_current_user_id),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    result = await service.create_order(user_id, payload)
    message = "Existing order reused" if result.reused else "Order created"
    return success_response(data=result.model_dump(mode="json"), message=message)


@router.post("/sessions", summary="Create a gateway payment session")
async def create_session(
    payload: CreateSessionRequest,
    user_id: str = Depends(get_current_user_id),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    session = await service.create_payment_session(user_id, payload)
    return success_response(data=session.model_dump(mode="json"), message="Payment session created")


@router.post("/verify", summary="Verify a checkout result")
async def verify_payment(
    payload: VerifyPaymentRequest,
    user_id: str = Depends(get_current_user_id),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    payment = await service.verify_payment(user_id, payload)
    return success_response(data=payment.model_dump(mode="json"), message="Payment verified")


@router.get("", summary="List my payments")
async def list_payments(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    items, total = await service.list_payments(user_id, skip=(page - 1) * size, limit=size)
    return paginated_response(
        items=[item.model_dump(mode="json") for item in items],
        total=total,
        page=page,
        size=size,
    )


@router.get("/events/{event_id}/status", summary="Has the caller paid for an event")
async def event_payment_status(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    status = await service.check_event_payment(user_id, event_id)
    return success_response(data=status.model_dump(mode="json"))


@router.get("/{payment_id}", summary="Get payment status")
async def get_payment(
    payment_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PaymentApplicationService = Depends(get_payment_service),
):
    payment = await service.get_payment(user_id, payment_id)
    return success_response(data=payment.model_dump(mode="json"))
