"""Swipe endpoint - record a swipe and report any resulting match."""

from api._common import JsonHandler, require_field
from src.services.swipe_ledger import get_super_like_quota, record_swipe


class handler(JsonHandler):
    """
    POST body: ``target_id``, ``swipe_type``, ``direction`` and optional
    ``listing_id``. Responds with the stored swipe, whether it was new, the
    match if one exists now, and the remaining super likes for today.
    """

    endpoint = "swipes/record"

    async def process(self, actor_id: str, body: dict) -> dict:
        result = await record_swipe(
            actor_id,
            require_field(body, "target_id"),
            body.get("listing_id"),
            require_field(body, "swipe_type"),
            require_field(body, "direction"),
        )
        quota = await get_super_like_quota(actor_id)
        return {
            "created": result.created,
            "swipe": result.swipe,
            "match": result.match,
            "super_like_quota": quota,
        }
