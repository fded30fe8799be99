"""
Gateway webhook endpoint.

Responses follow the gateways' retry conventions rather than the unified
envelope: 200 acknowledges, 400 rejects permanently, 500 asks for a retry.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette import status as http_status

from api.dependencies import get_gateways, get_webhook_service
from application.dtos.payments import ProcessingResult
from application.services.webhook_service import WebhookService
from core.logging_config import get_logger
from domain.payment.exceptions import PaymentSignatureError, WebhookPayloadError
from infrastructure.external.payments import GatewayRegistry
from infrastructure.external.payments import cashfree_client, razorpay_client


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = get_logger(__name__)

SIGNATURE_HEADERS = {
    "razorpay": razorpay_client.SIGNATURE_HEADER,
    "cashfree": f"{cashfree_client.SIGNATURE_HEADER}, {cashfree_client.TIMESTAMP_HEADER}",
}


def _cors_headers(provider: str) -> dict[str, str]:
    allowed = ["Content-Type"]
    signature = SIGNATURE_HEADERS.get(provider.lower())
    if signature:
        allowed.append(signature)
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": ", ".join(allowed),
    }


def _reply(provider: str, status_code: int, content: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=_cors_headers(provider))


def _processing_reply(provider: str, result: ProcessingResult) -> JSONResponse:
    if result.success:
        return _reply(
            provider,
            http_status.HTTP_200_OK,
            {
                "status": "success",
                "message": result.message,
                "event": result.event_type,
                "duplicate": result.duplicate,
            },
        )
    # every handler failure is retryable from the gateway's point of view
    return _reply(
        provider,
        http_status.HTTP_500_INTERNAL_SERVER_ERROR,
        {"error": "Processing failed", "message": result.error, "kind": result.kind.value if result.kind else None},
    )


@router.post("/{provider}", summary="Receive a gateway webhook")
async def receive_webhook(
    provider: str,
    request: Request,
    gateways: GatewayRegistry = Depends(get_gateways),
    service: WebhookService = Depends(get_webhook_service),
):
    if not gateways.is_supported(provider):
        return _reply(
            provider,
            http_status.HTTP_404_NOT_FOUND,
            {"error": "Unknown provider", "message": f"No webhook handler for provider '{provider}'"},
        )

    raw_body = await request.body()
    try:
        result = await service.ingest(gateways(provider), request.headers, raw_body)
    except PaymentSignatureError as exc:
        logger.warning("webhook_signature_invalid", provider=provider)
        return _reply(provider, http_status.HTTP_400_BAD_REQUEST, {"error": "Invalid signature", "message": exc.message})
    except WebhookPayloadError as exc:
        logger.warning("webhook_payload_invalid", provider=provider, error=exc.message)
        return _reply(provider, http_status.HTTP_400_BAD_REQUEST, {"error": "Invalid payload", "message": exc.message})
    except Exception as exc:
        logger.error("webhook_unhandled_error", provider=provider, error=str(exc), exc_info=True)
        return _reply(
            provider,
            http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"error": "Internal server error", "message": "Webhook could not be processed"},
        )

    if not result.success:
        logger.error(
            "webhook_processing_failed",
            provider=provider,
            event_type=result.event_type,
            kind=result.kind.value if result.kind else None,
            error=result.error,
        )
    return _processing_reply(provider, result)


@router.options("/{provider}", include_in_schema=False)
async def webhook_preflight(provider: str):
    return _reply(provider, http_status.HTTP_200_OK, {"status": "ok"})


@router.api_route("/{provider}", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def webhook_method_not_allowed(provider: str, request: Request):
    return _reply(
        provider,
        http_status.HTTP_405_METHOD_NOT_ALLOWED,
        {"error": "Method not allowed", "message": f"{request.method} is not supported on this endpoint"},
    )
