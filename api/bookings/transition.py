"""Booking endpoint - create a booking and move it through its lifecycle."""

from api._common import BadRequest, JsonHandler, require_field
from src.services import booking_lifecycle

ACTIONS = ("create", "confirm", "start", "complete", "cancel")


class handler(JsonHandler):
    """
    POST body: ``action`` plus ``match_id`` for create, or ``booking_id``
    for the transitions. ``cancel`` takes an optional ``reason``.
    """

    endpoint = "bookings/transition"

    async def process(self, actor_id: str, body: dict) -> dict:
        action = require_field(body, "action")

        if action == "create":
            booking = await booking_lifecycle.create_booking(actor_id, require_field(body, "match_id"))
            return {"booking": booking}

        if action not in ACTIONS:
            raise BadRequest(f"Unknown action: {action}. Expected one of {', '.join(ACTIONS)}")

        booking_id = require_field(body, "booking_id")
        if action == "confirm":
            booking = await booking_lifecycle.confirm_booking(actor_id, booking_id)
        elif action == "start":
            booking = await booking_lifecycle.start_booking(actor_id, booking_id)
        elif action == "complete":
            booking = await booking_lifecycle.complete_booking(actor_id, booking_id)
        else:
            booking = await booking_lifecycle.cancel_booking(actor_id, booking_id, reason=body.get("reason"))

        return {"booking": booking}
