"""Swipe ledger - record each swipe once and hand likes to the match resolver."""

import os
from datetime import datetime, timezone
from typing import Optional, Union
from src.models.listing import Listing
from src.models.swipe import (
    SuperLikeQuota,
    Swipe,
    SwipeDirection,
    SwipeResult,
    SwipeType,
)
from src.models.user import UserProfile
from src.services.idempotency import generate_id, swipe_key
from src.services.match_resolver import resolve_match
from src.services.notifications import LISTING_LIKED, dispatch_notification, listing_link
from src.services.session import require_actor
from src.services.supabase_client import (
    count_rows,
    fetch_one,
    fetch_rows,
    get_listing_by_id,
    get_user_by_id,
    insert_or_get,
)
from src.utils.errors import InvalidTarget, SuperLikeQuotaExceeded
from src.utils.logging import get_structured_logger, log_timing, mask_user_id

logger = get_structured_logger(__name__)

SUPER_LIKE_DAILY_LIMIT = int(os.environ.get("SUPER_LIKE_DAILY_LIMIT", "3"))


async def _resolve_listing(listing_id: str, actor_id: str) -> Listing:
    row = await get_listing_by_id(listing_id)
    if not row:
        raise InvalidTarget(f"Listing not found: {listing_id}")
    listing = Listing.model_validate(row)
    if not listing.is_active:
        raise InvalidTarget(f"Listing is no longer available: {listing_id}")
    if listing.user_id == actor_id:
        raise InvalidTarget("Cannot swipe on your own listing")
    return listing


async def resolve_target(
    actor_id: str,
    target_id: str,
    listing_id: Optional[str],
    swipe_type: SwipeType,
) -> tuple[str, Optional[str]]:
    """
    Resolve a swipe target to (target_owner_id, listing_id).

    Listing swipes target the listing itself. User swipes may carry the
    listing card they were made from, which must belong to the target user.
    """
    if swipe_type.targets_listing:
        if listing_id and listing_id != target_id:
            raise InvalidTarget("listing_id must match the swiped listing")
        listing = await _resolve_listing(target_id, actor_id)
        return listing.user_id, listing.id

    if target_id == actor_id:
        raise InvalidTarget("Cannot swipe on yourself")

    row = await get_user_by_id(target_id)
    if not row or not UserProfile.model_validate(row).is_active:
        raise InvalidTarget(f"User not found: {target_id}")

    if listing_id:
        listing = await _resolve_listing(listing_id, actor_id)
        if listing.user_id != target_id:
            raise InvalidTarget("Listing does not belong to the swiped user")
        return target_id, listing.id

    return target_id, None


def _start_of_utc_day() -> str:
    now = datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0).isoformat()


async def get_super_like_quota(actor_id: str) -> SuperLikeQuota:
    """Super likes used today (UTC) against the daily allowance."""
    actor_id = require_actor(actor_id)
    used = await count_rows(
        "swipes",
        filters={"swiper_id": actor_id, "direction": SwipeDirection.SUPER.value},
        gte={"created_at": _start_of_utc_day()},
    )
    remaining = max(0, SUPER_LIKE_DAILY_LIMIT - used)
    return SuperLikeQuota(
        can_super_like=used < SUPER_LIKE_DAILY_LIMIT,
        used=used,
        limit=SUPER_LIKE_DAILY_LIMIT,
        remaining=remaining,
    )


async def record_swipe(
    actor_id: str,
    target_id: str,
    listing_id: Optional[str],
    swipe_type: Union[SwipeType, str],
    direction: Union[SwipeDirection, str],
) -> SwipeResult:
    """
    Record a swipe at most once per (actor, target, swipe type).

    A repeat swipe is a no-op that returns the stored row. Likes are passed to
    the match resolver on every call, so retrying after a lost response still
    yields the match.
    """
    actor_id = require_actor(actor_id)
    swipe_type = SwipeType(swipe_type)
    direction = SwipeDirection(direction)

    target_owner_id, effective_listing_id = await resolve_target(
        actor_id, target_id, listing_id, swipe_type
    )

    key = swipe_key(actor_id, target_id, swipe_type)

    with log_timing(
        "record_swipe",
        logger=logger,
        actor_id=mask_user_id(actor_id),
        swipe_type=swipe_type.value,
        direction=direction.value
    ):
        existing = await fetch_one("swipes", key)
        if existing:
            row, created = existing, False
        else:
            if direction == SwipeDirection.SUPER:
                quota = await get_super_like_quota(actor_id)
                if not quota.can_super_like:
                    raise SuperLikeQuotaExceeded(
                        f"Daily super like limit of {quota.limit} reached",
                        details=quota.model_dump()
                    )

            row, created = await insert_or_get(
                "swipes",
                {
                    "id": generate_id(),
                    **key,
                    "listing_id": effective_listing_id,
                    "target_owner_id": target_owner_id,
                    "direction": direction.value,
                },
                key,
            )

    swipe = Swipe.model_validate(row)
    if not created:
        logger.info(
            "Repeat swipe ignored",
            swipe_id=swipe.id,
            stored_direction=swipe.direction.value,
            requested_direction=direction.value
        )

    match = None
    if swipe.direction.is_like:
        match = await resolve_match(actor_id, swipe.target_owner_id, swipe.listing_id)

    if match is None and created and swipe.direction.is_like and swipe_type.targets_listing:
        # Tell the owner so they can like back
        await dispatch_notification(
            swipe.target_owner_id,
            LISTING_LIKED,
            "New like on your listing",
            "Someone liked your listing. Like them back to match and start negotiating.",
            listing_link(swipe.listing_id)
        )

    return SwipeResult(created=created, swipe=swipe, match=match)


async def list_seen_target_ids(actor_id: str, swipe_type: Union[SwipeType, str]) -> set[str]:
    """Targets the actor has already swiped on, for excluding from discovery."""
    actor_id = require_actor(actor_id)
    rows = await fetch_rows(
        "swipes",
        filters={"swiper_id": actor_id, "swipe_type": SwipeType(swipe_type).value},
        columns="target_id",
    )
    return {row["target_id"] for row in rows}
