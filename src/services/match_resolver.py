"""Match resolver - turn reciprocal likes into exactly one match per pair."""

from typing import Optional
from src.models.match import Match, MatchStatus
from src.models.swipe import LIKE_DIRECTIONS, Swipe, SwipeDirection
from src.services.idempotency import generate_id, pair_key, pick_listing_scope
from src.services.notifications import MATCH_CREATED, chat_link, dispatch_notification
from src.services.session import require_actor
from src.services.supabase_client import fetch_one, fetch_rows, insert_or_get, utc_now_iso
from src.utils.logging import get_structured_logger, mask_user_id, timed

logger = get_structured_logger(__name__)


async def get_likes_between(swiper_id: str, owner_id: str) -> list[Swipe]:
    """All like swipes by ``swiper_id`` on ``owner_id`` or any of their listings."""
    rows = await fetch_rows(
        "swipes",
        filters={"swiper_id": swiper_id, "target_owner_id": owner_id},
        in_filters={"direction": LIKE_DIRECTIONS},
        order_by=["created_at", "id"],
    )
    return [Swipe.model_validate(row) for row in rows]


async def find_match(party_a: str, party_b: str, listing_id: Optional[str] = None) -> Optional[Match]:
    """Look up the match for an unordered pair in the given listing scope."""
    row = await fetch_one("matches", {"pair_key": pair_key(party_a, party_b, listing_id)})
    return Match.model_validate(row) if row else None


async def get_or_create_match(
    customer_id: str,
    provider_id: str,
    listing_id: Optional[str] = None,
    super_liked_by: Optional[str] = None,
) -> tuple[Match, bool]:
    """
    Insert-or-return-existing on the match pair key.

    Returns (match, created). Concurrent callers for the same pair all get the
    single stored row.
    """
    key = pair_key(customer_id, provider_id, listing_id)
    row, created = await insert_or_get(
        "matches",
        {
            "id": generate_id(),
            "customer_id": customer_id,
            "provider_id": provider_id,
            "listing_id": listing_id,
            "pair_key": key,
            "status": MatchStatus.PENDING.value,
            "super_liked_by": super_liked_by,
            "matched_at": utc_now_iso(),
        },
        {"pair_key": key},
    )
    return Match.model_validate(row), created


@timed("resolve_match")
async def resolve_match(
    actor_id: str,
    target_owner_id: str,
    listing_id: Optional[str] = None,
) -> Optional[Match]:
    """
    Create (or return) the match between the actor and a target owner.

    A match exists only when each side has a like on the other, either on the
    user directly or on one of their listings. Returns None otherwise.

    The match is scoped to ``listing_id`` when the swipe being resolved
    carries one, so retrying that swipe always lands on the same match.
    Otherwise it takes the listing of the reciprocal like, if any.
    """
    actor_id = require_actor(actor_id)

    reciprocal = await get_likes_between(target_owner_id, actor_id)
    if not reciprocal:
        logger.debug(
            "No reciprocal like, match stays pending",
            actor_id=mask_user_id(actor_id),
            target_owner_id=mask_user_id(target_owner_id)
        )
        return None

    own = await get_likes_between(actor_id, target_owner_id)
    likes = own + reciprocal

    # The listing owner is the provider
    if listing_id:
        scope = listing_id
        customer_id, provider_id = actor_id, target_owner_id
    else:
        scope = pick_listing_scope(*(swipe.listing_id for swipe in reciprocal))
        if scope:
            customer_id, provider_id = target_owner_id, actor_id
        else:
            customer_id, provider_id = actor_id, target_owner_id

    super_liked_by = next(
        (swipe.swiper_id for swipe in likes if swipe.direction == SwipeDirection.SUPER),
        None
    )

    match, created = await get_or_create_match(customer_id, provider_id, scope, super_liked_by)

    if created:
        logger.info(
            "Match created from reciprocal likes",
            match_id=match.id,
            listing_id=scope,
            customer_id=mask_user_id(customer_id),
            provider_id=mask_user_id(provider_id)
        )
        for user_id in (customer_id, provider_id):
            await dispatch_notification(
                user_id,
                MATCH_CREATED,
                "New Match!",
                "You both liked each other. Start chatting to agree the details.",
                chat_link(match.id)
            )
    else:
        logger.debug("Match already existed for pair", match_id=match.id, listing_id=scope)

    return match
