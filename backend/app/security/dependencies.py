import logging
import os

from fastapi import Header, HTTPException, status

logger = logging.getLogger("slotengine.security")


def _is_dev_env() -> bool:
    return os.getenv("ENV", "dev").lower() in {"dev", "development", "local"}


def require_host_api_key(
    x_host_key: str | None = Header(default=None, alias="X-Host-Key"),
) -> None:
    configured_key = os.getenv("HOST_API_KEY", "")

    if not configured_key:
        if _is_dev_env():
            logger.warning("HOST_API_KEY is not set in dev; allowing host request without key.")
            return
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "HOST_AUTH_NOT_CONFIGURED",
                "human_message": "Host API key is not configured.",
            },
        )

    if x_host_key != configured_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "INVALID_HOST_API_KEY",
                "human_message": "Invalid host API key.",
            },
        )


def resolve_host_id(
    x_host_id: str | None = Header(default=None, alias="X-Host-Id"),
) -> int | None:
    """Host the write acts for; listings owned by anyone else look absent."""
    if x_host_id is None or not x_host_id.strip():
        return None
    try:
        return int(x_host_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error_code": "INVALID_HOST_ID",
                "human_message": "X-Host-Id must be an integer.",
            },
        ) from exc
