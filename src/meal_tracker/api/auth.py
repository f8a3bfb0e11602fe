"""Request authentication dependencies."""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import Header, HTTPException, Request, status

if TYPE_CHECKING:
    from meal_tracker.containers import AppContainer

_BEARER_PREFIX = "Bearer "


async def require_user(
    request: Request,
    authorization: str | None = Header(default=None),
) -> UUID:
    """Resolve the bearer token to the id of the requesting user."""
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required"
        )
    container: AppContainer = request.app.state.container
    owner_id = container.token_verifier.verify(
        authorization[len(_BEARER_PREFIX) :].strip()
    )
    if owner_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required"
        )
    return owner_id


async def require_webhook_secret(
    request: Request,
    x_webhook_secret: str | None = Header(default=None),
) -> None:
    """Ensure change-feed deliveries carry the shared secret."""
    container: AppContainer = request.app.state.container
    expected = container.settings.webhook_secret
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
