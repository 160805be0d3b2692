"""Direct match shortcut - open a chat with a user or listing owner without swipes."""

from src.models.listing import Listing
from src.models.match import Match
from src.models.user import UserProfile
from src.services.match_resolver import get_or_create_match
from src.services.notifications import NEW_CHAT, chat_link, dispatch_notification
from src.services.session import require_actor
from src.services.supabase_client import get_listing_by_id, get_user_by_id
from src.utils.errors import SelfMatchNotAllowed, TargetNotFound
from src.utils.logging import get_structured_logger, mask_user_id, timed

logger = get_structured_logger(__name__)


async def _notify_new_chat(match: Match, recipient_id: str, message: str) -> None:
    await dispatch_notification(recipient_id, NEW_CHAT, "New Chat", message, chat_link(match.id))


@timed("get_or_create_direct_match")
async def get_or_create_direct_match(actor_id: str, counterpart_id: str) -> Match:
    """
    Return the direct (listing-less) match between two users, creating it if needed.

    The initiator is recorded as the customer.
    """
    actor_id = require_actor(actor_id)
    if actor_id == counterpart_id:
        raise SelfMatchNotAllowed("Cannot start a conversation with yourself")

    row = await get_user_by_id(counterpart_id)
    if not row or not UserProfile.model_validate(row).is_active:
        raise TargetNotFound(f"User not found: {counterpart_id}")

    match, created = await get_or_create_match(actor_id, counterpart_id, None)
    if created:
        logger.info(
            "Direct match created",
            match_id=match.id,
            actor_id=mask_user_id(actor_id),
            counterpart_id=mask_user_id(counterpart_id)
        )
        await _notify_new_chat(match, counterpart_id, "Someone wants to chat with you")
    return match


@timed("get_or_create_match_for_chat")
async def get_or_create_match_for_chat(actor_id: str, listing_id: str) -> Match:
    """
    Return the listing-scoped match between the actor and the listing owner.

    The listing owner is the provider, the actor the customer.
    """
    actor_id = require_actor(actor_id)

    row = await get_listing_by_id(listing_id)
    if not row:
        raise TargetNotFound(f"Listing not found: {listing_id}")
    listing = Listing.model_validate(row)

    if listing.user_id == actor_id:
        raise SelfMatchNotAllowed("Cannot start a conversation about your own listing")

    match, created = await get_or_create_match(actor_id, listing.user_id, listing.id)
    if created:
        logger.info(
            "Listing chat match created",
            match_id=match.id,
            listing_id=listing.id,
            actor_id=mask_user_id(actor_id)
        )
        await _notify_new_chat(match, listing.user_id, "Someone wants to chat about your listing")
    return match
