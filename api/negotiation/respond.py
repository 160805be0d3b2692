"""Negotiation endpoint - propose, answer and walk away."""

from api._common import BadRequest, JsonHandler, require_field
from src.services import negotiation

ACTIONS = ("propose_price", "propose_date", "accept", "decline", "cancel")


class handler(JsonHandler):
    """
    POST body: ``action`` and ``match_id`` plus, per action:

    - propose_price: ``price``, optional ``currency``
    - propose_date: ``datetime`` (ISO-8601)
    - accept / decline: ``message_id``, ``proposal_type`` (price | date)
    - cancel: optional ``reason``
    """

    endpoint = "negotiation/respond"

    async def process(self, actor_id: str, body: dict) -> dict:
        action = require_field(body, "action")
        match_id = require_field(body, "match_id")

        if action == "propose_price":
            message = await negotiation.propose_price(
                actor_id, match_id, require_field(body, "price"), body.get("currency")
            )
            return {"message": message}

        if action == "propose_date":
            message = await negotiation.propose_date(actor_id, match_id, require_field(body, "datetime"))
            return {"message": message}

        if action == "accept":
            match = await negotiation.accept_proposal(
                actor_id, match_id, require_field(body, "message_id"), require_field(body, "proposal_type")
            )
            return {"match": match}

        if action == "decline":
            message = await negotiation.decline_proposal(
                actor_id, match_id, require_field(body, "message_id"), require_field(body, "proposal_type")
            )
            return {"message": message}

        if action == "cancel":
            match = await negotiation.cancel_match(actor_id, match_id, body.get("reason"))
            return {"match": match}

        raise BadRequest(f"Unknown action: {action}. Expected one of {', '.join(ACTIONS)}")
