"""Session resolution - map a Supabase access token to the acting user id."""

from typing import Optional
from src.services.supabase_client import SupabaseClient
from src.utils.errors import NotAuthenticated, StoreUnavailable
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


def require_actor(actor_id: Optional[str]) -> str:
    """Reject calls that carry no resolved actor."""
    if not actor_id or not str(actor_id).strip():
        raise NotAuthenticated("No authenticated user for this request")
    return str(actor_id)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Pull the token out of an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def resolve_actor(access_token: Optional[str]) -> str:
    """
    Resolve an access token to the user id it was issued for.

    Raises NotAuthenticated when the token is missing, expired or unknown.
    """
    if not access_token:
        raise NotAuthenticated("Missing access token")

    async with SupabaseClient() as client:
        try:
            response = client.auth.get_user(access_token)
        except Exception as e:
            message = str(e).lower()
            if "jwt" in message or "token" in message or "401" in message or "403" in message:
                logger.info("Access token rejected", error=str(e))
                raise NotAuthenticated("Invalid or expired access token") from e
            raise StoreUnavailable(f"Failed to resolve session: {e}") from e

    user = getattr(response, "user", None) if response else None
    if user is None or not getattr(user, "id", None):
        raise NotAuthenticated("Access token does not belong to a user")

    logger.debug("Resolved actor from access token", actor_id=mask_user_id(str(user.id)))
    return str(user.id)
