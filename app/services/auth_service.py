"""Bearer-token check delegated to an external validation service."""

from typing import Optional

import httpx
from fastapi import BackgroundTasks, Header, status

from app.config import settings
from app.errors import TokenValidationError
from app.logging_config import get_logger
from app.services.result import Result

logger = get_logger("auth_service")


def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        return None
    return parts[1].strip()


async def validate_token(token: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> Result[dict]:
    """Ask the validation service whether the token is currently valid."""
    if not settings.token_validation_url:
        return Result.failure("TOKEN_VALIDATION_URL not configured", "not_configured", status_code=500)

    headers = {"Authorization": f"Bearer {token}"}
    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            response = await client.get(settings.token_validation_url, headers=headers)
    except httpx.HTTPError as e:
        logger.error(f"No response from validation server: {e}")
        return Result.failure(
            "Error validating token: No response from validation server.", "unreachable", status_code=500
        )

    if response.status_code >= 400:
        try:
            details = response.json()
        except ValueError:
            details = response.text[:500]
        logger.warning(
            "Token validation rejected",
            extra={"context": {"status": response.status_code, "details": details}},
        )
        return Result.failure("Token validation failed.", "rejected", status_code=response.status_code, details=details)

    try:
        body = response.json()
    except ValueError:
        body = {}
    if response.status_code == 200 and isinstance(body, dict) and body.get("isValid"):
        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        logger.info("Token validated", extra={"context": {"expires_at": data.get("expiresAt")}})
        return Result.success(body)

    return Result.failure("Invalid token.", "invalid", status_code=401)


async def invalidate_token(token: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
    """Tokens are single use: burn it once the request is accepted."""
    if not settings.token_invalidation_url:
        return
    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            await client.post(settings.token_invalidation_url, json={}, headers={"Authorization": f"Bearer {token}"})
    except httpx.HTTPError as e:
        logger.warning(f"Token invalidation failed: {e}")


async def require_token(
    background_tasks: BackgroundTasks,
    authorization: Optional[str] = Header(default=None),
) -> None:
    if not settings.token_api:
        logger.debug("Token validation disabled, skipping")
        return

    token = parse_bearer(authorization)
    if token is None:
        raise TokenValidationError(
            "Authorization token not found. It must be provided in the Authorization header "
            'as "Bearer <token>".',
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    result = await validate_token(token)
    if not result.ok:
        raise TokenValidationError(
            result.error,
            status_code=result.status_code or status.HTTP_401_UNAUTHORIZED,
            details=result.details,
        )

    background_tasks.add_task(invalidate_token, token)
