"""Booking lifecycle - freeze negotiated terms into a booking and move it forward.

States: pending -> confirmed -> in_progress -> completed, with cancelled
reachable from every non-terminal state.

The cancellation policy is copied from the listing when the booking is
created and never refreshed, so later listing edits cannot change the fee of
an existing booking.
"""

import os
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from src.models.booking import Booking, BookingStatus, CancellationPolicy
from src.models.listing import Listing
from src.models.match import Match, MatchStatus, OPEN_MATCH_STATUSES
from src.services.chat import get_match, load_match_for_actor
from src.services.idempotency import generate_id
from src.services.notifications import (
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    BOOKING_CONFIRMED,
    BOOKING_REQUEST,
    booking_link,
    dispatch_notification,
)
from src.services.session import require_actor
from src.services.supabase_client import (
    conditional_update,
    fetch_one,
    get_booking_by_id,
    get_listing_by_id,
    insert_or_get,
    utc_now_iso,
)
from src.utils.errors import (
    IncompleteNegotiation,
    InvalidTransition,
    NotParticipant,
    TargetNotFound,
)
from src.utils.logging import get_structured_logger, mask_user_id, timed

logger = get_structured_logger(__name__)

DEFAULT_CANCELLATION_HOURS = int(os.environ.get("DEFAULT_CANCELLATION_HOURS", "24"))

ACTIVE_BOOKING_STATUSES = [
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.IN_PROGRESS.value,
]


def snapshot_policy(listing: Optional[Listing]) -> CancellationPolicy:
    """Copy the listing's live cancellation policy, filling in defaults."""
    if listing is None:
        return CancellationPolicy(cutoff_hours=DEFAULT_CANCELLATION_HOURS)

    cutoff = listing.cancellation_hours
    return CancellationPolicy(
        cutoff_hours=DEFAULT_CANCELLATION_HOURS if cutoff is None else cutoff,
        fee_enabled=listing.cancellation_fee_enabled,
        fee_percentage=listing.cancellation_fee_percentage,
        fee_amount=listing.cancellation_fee_amount,
        refund_policy=listing.refund_policy or "full",
    )


def compute_cancellation_fee(booking: Booking, now: Optional[datetime] = None) -> float:
    """
    Fee owed for cancelling ``booking`` at ``now``.

    Zero outside the cutoff window or when the snapshot has no fee. Inside
    the window a percentage of the final price wins over a fixed amount.
    Rounded to cents.
    """
    policy = booking.cancellation_policy
    if not policy.fee_enabled or booking.final_date is None:
        return 0.0

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    start = booking.final_date
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)

    hours_until_start = (start - now).total_seconds() / 3600
    if hours_until_start >= policy.cutoff_hours:
        return 0.0

    if policy.fee_percentage is not None and booking.final_price is not None:
        fee = Decimal(str(booking.final_price)) * Decimal(str(policy.fee_percentage)) / 100
    elif policy.fee_amount is not None:
        fee = Decimal(str(policy.fee_amount))
    else:
        return 0.0

    return float(fee.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


async def _load_listing(listing_id: Optional[str]) -> Optional[Listing]:
    if not listing_id:
        return None
    row = await get_listing_by_id(listing_id)
    return Listing.model_validate(row) if row else None


async def _find_booking_for_match(match_id: str) -> Optional[Booking]:
    row = await fetch_one("bookings", {"match_id": match_id})
    return Booking.model_validate(row) if row else None


def _terms(match: Match) -> dict:
    return {
        "final_price": match.final_price,
        "final_date": match.final_date.isoformat() if match.final_date else None,
    }


async def _build_booking_row(match: Match) -> dict:
    listing = await _load_listing(match.listing_id)
    return {
        "id": generate_id(),
        "match_id": match.id,
        "listing_id": match.listing_id,
        "customer_id": match.customer_id,
        "provider_id": match.provider_id,
        **_terms(match),
        "currency": listing.currency if listing else None,
        "required_terms": listing.negotiated_terms if listing else "both",
        "status": BookingStatus.PENDING.value,
        "cancellation_policy": snapshot_policy(listing).model_dump(mode="json"),
    }


async def _insert_booking(match: Match, row: dict) -> Booking:
    """Insert-or-return the booking for a match and link it from the match."""
    stored, created = await insert_or_get("bookings", row, {"match_id": match.id})
    booking = Booking.model_validate(stored)

    await conditional_update(
        "matches",
        {"booking_id": booking.id},
        filters={"id": match.id, "booking_id": None},
    )

    if created:
        logger.info(
            "Booking created",
            booking_id=booking.id,
            match_id=match.id,
            required_terms=booking.required_terms,
            cutoff_hours=booking.cancellation_policy.cutoff_hours
        )
        await dispatch_notification(
            booking.provider_id,
            BOOKING_REQUEST,
            "New booking request",
            "A booking is waiting for confirmation",
            booking_link(booking.id)
        )
    return booking


@timed("create_booking")
async def create_booking(actor_id: str, match_id: str) -> Booking:
    """
    Create the booking for a match, or return the one it already has.

    Terms may still be incomplete; confirmation checks them.
    """
    match = await load_match_for_actor(actor_id, match_id)

    existing = await _find_booking_for_match(match.id)
    if existing:
        return existing

    if match.status.value not in OPEN_MATCH_STATUSES:
        raise InvalidTransition(
            f"Cannot book a {match.status.value} match",
            details={"match_id": match.id, "status": match.status.value}
        )

    return await _insert_booking(match, await _build_booking_row(match))


async def sync_booking_from_match(match: Match) -> Optional[Booking]:
    """
    Bring the booking in line with the match's agreed terms.

    Creates the booking once every required term is agreed and refreshes the
    terms of a booking that is still pending. Returns None while terms are
    still missing and no booking exists.
    """
    match = await get_match(match.id)
    booking = await _find_booking_for_match(match.id)

    if booking is None:
        row = await _build_booking_row(match)
        if Booking.model_validate(row).missing_terms():
            return None
        return await _insert_booking(match, row)

    if booking.status != BookingStatus.PENDING:
        return booking

    rows = await conditional_update(
        "bookings",
        _terms(match),
        filters={"id": booking.id, "status": BookingStatus.PENDING.value},
    )
    if not rows:
        return Booking.model_validate(await get_booking_by_id(booking.id))

    logger.debug("Booking terms refreshed", booking_id=booking.id, match_id=match.id)
    return Booking.model_validate(rows[0])


async def load_booking_for_actor(actor_id: str, booking_id: str) -> Booking:
    actor_id = require_actor(actor_id)
    row = await get_booking_by_id(booking_id)
    if not row:
        raise TargetNotFound(f"Booking not found: {booking_id}")
    booking = Booking.model_validate(row)
    if not booking.has_party(actor_id):
        raise NotParticipant("Not a party of this booking")
    return booking


async def _transition(booking: Booking, expected: list[str], updates: dict) -> Booking:
    """Conditional status move. Raises InvalidTransition if the booking moved on."""
    target = updates["status"]
    if booking.status.value not in expected:
        raise InvalidTransition(
            f"Cannot move booking from {booking.status.value} to {target}",
            details={"booking_id": booking.id, "status": booking.status.value}
        )

    rows = await conditional_update(
        "bookings",
        updates,
        filters={"id": booking.id},
        in_filters={"status": expected},
    )
    if not rows:
        current = Booking.model_validate(await get_booking_by_id(booking.id))
        raise InvalidTransition(
            f"Cannot move booking from {current.status.value} to {target}",
            details={"booking_id": booking.id, "status": current.status.value}
        )

    logger.info(
        "Booking transitioned",
        booking_id=booking.id,
        from_status=booking.status.value,
        to_status=target
    )
    return Booking.model_validate(rows[0])


async def _update_match_status(match_id: str, expected: list[str], updates: dict) -> None:
    rows = await conditional_update(
        "matches",
        updates,
        filters={"id": match_id},
        in_filters={"status": expected},
    )
    if not rows:
        logger.warning(
            "Match status not updated, it moved on concurrently",
            match_id=match_id,
            target_status=updates.get("status")
        )


def _counterpart(booking: Booking, actor_id: str) -> str:
    return booking.provider_id if actor_id == booking.customer_id else booking.customer_id


@timed("confirm_booking")
async def confirm_booking(actor_id: str, booking_id: str) -> Booking:
    """pending -> confirmed. Every required term must be agreed."""
    booking = await load_booking_for_actor(actor_id, booking_id)

    if booking.status == BookingStatus.PENDING:
        missing = booking.missing_terms()
        if missing:
            raise IncompleteNegotiation(
                f"Missing agreed terms: {', '.join(missing)}",
                details={"booking_id": booking.id, "missing": missing}
            )

    booking = await _transition(
        booking,
        [BookingStatus.PENDING.value],
        {"status": BookingStatus.CONFIRMED.value, "confirmed_at": utc_now_iso()},
    )
    await _update_match_status(
        booking.match_id,
        OPEN_MATCH_STATUSES,
        {"status": MatchStatus.CONFIRMED.value},
    )
    await dispatch_notification(
        _counterpart(booking, actor_id),
        BOOKING_CONFIRMED,
        "Booking confirmed",
        "Your booking has been confirmed",
        booking_link(booking.id)
    )
    return booking


async def start_booking(actor_id: str, booking_id: str) -> Booking:
    """confirmed -> in_progress."""
    booking = await load_booking_for_actor(actor_id, booking_id)
    return await _transition(
        booking,
        [BookingStatus.CONFIRMED.value],
        {"status": BookingStatus.IN_PROGRESS.value, "started_at": utc_now_iso()},
    )


@timed("complete_booking")
async def complete_booking(actor_id: str, booking_id: str) -> Booking:
    """
    confirmed | in_progress -> completed.

    Completes the match too and invites both parties to rate each other.
    """
    booking = await load_booking_for_actor(actor_id, booking_id)
    now = utc_now_iso()
    booking = await _transition(
        booking,
        [BookingStatus.CONFIRMED.value, BookingStatus.IN_PROGRESS.value],
        {"status": BookingStatus.COMPLETED.value, "completed_at": now},
    )
    await _update_match_status(
        booking.match_id,
        [MatchStatus.CONFIRMED.value],
        {"status": MatchStatus.COMPLETED.value, "completed_at": now},
    )
    for user_id in (booking.customer_id, booking.provider_id):
        await dispatch_notification(
            user_id,
            BOOKING_COMPLETED,
            "Booking completed",
            "How did it go? Leave a rating",
            booking_link(booking.id)
        )
    return booking


@timed("cancel_booking")
async def cancel_booking(
    actor_id: str,
    booking_id: str,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Cancel a non-terminal booking and its match.

    Inside the policy's cutoff window the fee from the frozen policy is
    recorded on the booking.
    """
    booking = await load_booking_for_actor(actor_id, booking_id)
    now = now or datetime.now(timezone.utc)

    fee = compute_cancellation_fee(booking, now)
    booking = await _transition(
        booking,
        ACTIVE_BOOKING_STATUSES,
        {
            "status": BookingStatus.CANCELLED.value,
            "cancelled_at": now.isoformat(),
            "cancelled_by": actor_id,
            "cancellation_reason": reason,
            "cancellation_fee": fee,
            "cancellation_fee_applied": fee > 0,
        },
    )
    await _update_match_status(
        booking.match_id,
        OPEN_MATCH_STATUSES + [MatchStatus.CONFIRMED.value],
        {"status": MatchStatus.CANCELLED.value, "cancelled_at": now.isoformat()},
    )

    logger.info(
        "Booking cancelled",
        booking_id=booking.id,
        cancelled_by=mask_user_id(actor_id),
        cancellation_fee=fee
    )
    await dispatch_notification(
        _counterpart(booking, actor_id),
        BOOKING_CANCELLED,
        "Booking cancelled",
        "A booking has been cancelled",
        booking_link(booking.id)
    )
    return booking
