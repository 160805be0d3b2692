"""Swipe models."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from src.models.match import Match


class SwipeType(str, Enum):
    """What the swiper is swiping on."""
    CUSTOMER_ON_LISTING = "customer_on_listing"
    PROVIDER_ON_LISTING = "provider_on_listing"
    CUSTOMER_ON_PROVIDER = "customer_on_provider"
    USER_ON_USER = "user_on_user"

    @property
    def targets_listing(self) -> bool:
        return self in (SwipeType.CUSTOMER_ON_LISTING, SwipeType.PROVIDER_ON_LISTING)


class SwipeDirection(str, Enum):
    """Swipe direction. SUPER counts as a like."""
    LEFT = "left"
    RIGHT = "right"
    SUPER = "super"

    @property
    def is_like(self) -> bool:
        return self in (SwipeDirection.RIGHT, SwipeDirection.SUPER)


LIKE_DIRECTIONS = [SwipeDirection.RIGHT.value, SwipeDirection.SUPER.value]


class Swipe(BaseModel):
    """A single swipe row. Never mutated, never deleted."""
    id: str = Field(..., description="Swipe ID (ULID)")
    swiper_id: str = Field(..., description="User who swiped")
    target_id: str = Field(..., description="Listing ID or user ID swiped on")
    listing_id: Optional[str] = Field(None, description="Listing ID for listing-mediated swipes")
    target_owner_id: str = Field(..., description="User behind the target (listing owner or target user)")
    swipe_type: SwipeType
    direction: SwipeDirection
    created_at: Optional[str] = None


class SwipeResult(BaseModel):
    """Outcome of recording a swipe."""
    created: bool = Field(..., description="False when the swipe already existed")
    swipe: Swipe
    match: Optional[Match] = None


class SuperLikeQuota(BaseModel):
    """Daily super like allowance."""
    can_super_like: bool
    used: int
    limit: int
    remaining: int
