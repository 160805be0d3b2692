"""Open-chat endpoint - get or create the match behind a conversation."""

from api._common import BadRequest, JsonHandler
from src.services.direct_match import get_or_create_direct_match, get_or_create_match_for_chat


class handler(JsonHandler):
    """POST body: either ``listing_id`` or ``counterpart_id``."""

    endpoint = "matches/open"

    async def process(self, actor_id: str, body: dict) -> dict:
        listing_id = body.get("listing_id")
        counterpart_id = body.get("counterpart_id")

        if listing_id and counterpart_id:
            raise BadRequest("Send either listing_id or counterpart_id, not both")
        if listing_id:
            match = await get_or_create_match_for_chat(actor_id, listing_id)
        elif counterpart_id:
            match = await get_or_create_direct_match(actor_id, counterpart_id)
        else:
            raise BadRequest("Missing required field: listing_id or counterpart_id")

        return {"match": match}
