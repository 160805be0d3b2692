"""Match model."""

from enum import Enum
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class MatchStatus(str, Enum):
    """Match negotiation status."""
    PENDING = "pending"
    NEGOTIATING = "negotiating"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses in which terms may still be proposed and accepted
OPEN_MATCH_STATUSES = [MatchStatus.PENDING.value, MatchStatus.NEGOTIATING.value]


class Match(BaseModel):
    """Mutual-interest record between a customer and a provider."""
    id: str = Field(..., description="Match ID (ULID)")
    customer_id: str = Field(..., description="Customer user ID")
    provider_id: str = Field(..., description="Provider user ID (listing owner for listing matches)")
    listing_id: Optional[str] = Field(None, description="Listing ID, null for direct matches")
    pair_key: str = Field(..., description="Unordered party pair plus listing scope, unique")
    status: MatchStatus = MatchStatus.PENDING
    proposed_price: Optional[float] = None
    final_price: Optional[float] = None
    proposed_date: Optional[datetime] = None
    final_date: Optional[datetime] = None
    super_liked_by: Optional[str] = None
    booking_id: Optional[str] = None
    matched_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    completed_at: Optional[str] = None

    def has_party(self, user_id: Optional[str]) -> bool:
        return user_id is not None and user_id in (self.customer_id, self.provider_id)

    def counterpart_of(self, user_id: str) -> str:
        """Return the other party of the match."""
        return self.provider_id if user_id == self.customer_id else self.customer_id
