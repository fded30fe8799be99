"""
API dependencies: authentication and payment service lookup.

The service graph is built once by the application lifespan and kept on
app.state; these providers only hand it out per request.
"""
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from application.services.payment_service import PaymentApplicationService
from application.services.webhook_service import WebhookService
from core.config import settings
from core.exceptions import (
    ForbiddenException,
    TokenExpiredException,
    TokenInvalidException,
    UnauthorizedException,
)
from core.logging_config import get_logger
from infrastructure.container import PaymentServices
from infrastructure.external.payments import GatewayRegistry


logger = get_logger(__name__)

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="Access token issued by the identity provider",
    auto_error=False,
)


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    """Extract the bearer token or fail with 401."""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise UnauthorizedException("Authentication credentials were not provided")


async def get_token_claims(token: str = Depends(get_token)) -> dict:
    """Validate the access token and return its claims."""
    secret = settings.auth.jwt_secret
    if not secret:
        logger.error("auth_secret_missing")
        raise UnauthorizedException("Authentication is not configured")

    options = {"require": ["sub", "exp"]}
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.auth.jwt_algorithm],
            audience=settings.auth.jwt_audience,
            options=options if settings.auth.jwt_audience else {**options, "verify_aud": False},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredException()
    except jwt.InvalidTokenError as exc:
        logger.info("access_token_rejected", reason=str(exc))
        raise TokenInvalidException()

    if not payload.get("sub"):
        raise TokenInvalidException("Access token has no subject")
    return payload


async def get_current_user_id(claims: dict = Depends(get_token_claims)) -> str:
    return str(claims["sub"])


def _claim(claims: dict, path: str):
    value = claims
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


async def get_current_admin_id(claims: dict = Depends(get_token_claims)) -> str:
    """Subject of a token carrying the admin role, otherwise 403."""
    user_id = str(claims["sub"])
    if _claim(claims, settings.auth.role_claim) != settings.auth.admin_role:
        logger.info("admin_access_denied", user_id=user_id)
        raise ForbiddenException("Admin role required")
    return user_id


def get_payment_services(request: Request) -> PaymentServices:
    services = getattr(request.app.state, "payment_services", None)
    if services is None:
        raise RuntimeError("Payment services are not initialised")
    return services


def get_gateways(request: Request) -> GatewayRegistry:
    gateways = getattr(request.app.state, "payment_gateways", None)
    if gateways is None:
        raise RuntimeError("Payment gateways are not initialised")
    return gateways


async def get_payment_service(
    services: PaymentServices = Depends(get_payment_services),
) -> PaymentApplicationService:
    return services.payments


async def get_webhook_service(
    services: PaymentServices = Depends(get_payment_services),
) -> WebhookService:
    return services.webhooks
