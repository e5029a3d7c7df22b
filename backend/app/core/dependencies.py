import uuid
from dataclasses import dataclass
from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.security import decode_token

logger = structlog.get_logger()
security = HTTPBearer()


@dataclass(frozen=True)
class CurrentIdentity:
    """Caller identity as asserted by the identity provider's token."""

    user_id: str
    organization_id: str | None = None
    role: str | None = None
    tier: str | None = None


def _uuid_claim(value) -> str | None:
    if value is None:
        return None
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        return None


async def get_current_identity(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    request: Request,
) -> CurrentIdentity:
    payload = decode_token(credentials.credentials)
    if payload is None or payload.get("type") != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user_id = _uuid_claim(payload.get("sub"))
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    org_claim = payload.get("org_id")
    organization_id = _uuid_claim(org_claim)
    if org_claim is not None and organization_id is None:
        logger.warning("auth.invalid_org_claim", user_id=user_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    identity = CurrentIdentity(
        user_id=user_id,
        organization_id=organization_id,
        role=payload.get("role"),
        tier=payload.get("tier"),
    )

    # Bind structured logging context
    structlog.contextvars.bind_contextvars(
        organization_id=organization_id,
        user_id=user_id,
    )
    request.state.identity = identity
    return identity
