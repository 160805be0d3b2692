"""Notification dispatch - fire-and-forget in-app notifications.

Delivery (push, email) happens elsewhere; this module only records the
notification row. A failed dispatch never fails the state transition that
triggered it.
"""

from typing import Optional
from src.services.idempotency import generate_id
from src.services.supabase_client import insert_row
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

# Notification types understood by the app
MATCH_CREATED = "match"
LISTING_LIKED = "liked"
NEW_CHAT = "message"
PROPOSAL_ACCEPTED = "proposal_accepted"
PROPOSAL_DECLINED = "proposal_declined"
BOOKING_REQUEST = "booking_request"
BOOKING_CONFIRMED = "booking_confirmed"
BOOKING_CANCELLED = "booking_cancelled"
BOOKING_COMPLETED = "booking_completed"


async def dispatch_notification(
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    link: Optional[str] = None,
) -> bool:
    """
    Record a notification for a user.

    Returns True on success, False if the notification could not be stored.
    """
    try:
        await insert_row("notifications", {
            "id": generate_id(),
            "user_id": user_id,
            "type": notification_type,
            "title": title,
            "message": message,
            "link": link,
            "is_read": False,
        })
        logger.debug(
            "Notification dispatched",
            user_id=mask_user_id(user_id),
            notification_type=notification_type
        )
        return True
    except Exception as e:
        logger.warning(
            "Failed to dispatch notification (non-fatal)",
            user_id=mask_user_id(user_id),
            notification_type=notification_type,
            error=str(e)
        )
        return False


def chat_link(match_id: str) -> str:
    return f"/chat/{match_id}"


def booking_link(booking_id: str) -> str:
    return f"/bookings/{booking_id}"


def listing_link(listing_id: str) -> str:
    return f"/dashboard?tab=listings&listing={listing_id}"
