"""Bearer token verification against Supabase Auth."""

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from supabase import Client

logger = logging.getLogger(__name__)


class TokenVerifier(Protocol):
    """Interface for resolving an access token to a user id."""

    def verify(self, token: str) -> UUID | None:
        """Return the user id for a valid token, else None."""


@dataclass
class SupabaseTokenVerifier(TokenVerifier):
    """Verifies access tokens with the Supabase Auth API."""

    client: Client

    def verify(self, token: str) -> UUID | None:
        """Resolve a Supabase access token to its user id."""
        try:
            response = self.client.auth.get_user(token)
        except Exception:
            logger.warning("Failed to verify access token", exc_info=True)
            return None
        user = getattr(response, "user", None)
        if user is None:
            return None
        return UUID(str(user.id))
