"""Uniqueness keys for the insert-or-return-existing operations.

Two keys back the core invariants, each enforced by a unique index in the
store (see supabase/migrations):

- swipe key: (swiper_id, target_id, swipe_type)
- match pair key: unordered party pair plus listing scope
"""

from typing import Optional
from ulid import ULID

DIRECT_SCOPE = "direct"


def generate_id() -> str:
    """Generate a text row ID (ULID format)."""
    return str(ULID())


def swipe_key(swiper_id: str, target_id: str, swipe_type: str) -> dict:
    """Filter identifying the single swipe row allowed for this tuple."""
    return {
        "swiper_id": swiper_id,
        "target_id": target_id,
        "swipe_type": getattr(swipe_type, "value", swipe_type),
    }


def pair_key(party_a: str, party_b: str, listing_id: Optional[str] = None) -> str:
    """
    Deterministic key for the match between two parties.

    Symmetric in the parties, so A→B and B→A resolve to the same row.
    Listing-scoped and direct matches get different keys.
    """
    low, high = sorted((party_a, party_b))
    return f"{low}:{high}:{listing_id or DIRECT_SCOPE}"


def pick_listing_scope(*listing_ids: Optional[str]) -> Optional[str]:
    """
    Choose one listing among the reciprocal likes on the actor's listings.

    The lexicographically smallest non-null listing id wins, so the choice
    does not depend on the order the likes were read in.
    """
    candidates = sorted(listing_id for listing_id in listing_ids if listing_id)
    return candidates[0] if candidates else None
