"""Booking models."""

from enum import Enum
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class BookingStatus(str, Enum):
    """Booking lifecycle status."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStatus.COMPLETED, BookingStatus.CANCELLED)


class CancellationPolicy(BaseModel):
    """Cancellation policy, frozen onto a booking at creation time."""
    cutoff_hours: int = Field(default=24, ge=0, description="Free cancellation until this many hours before start")
    fee_enabled: bool = False
    fee_percentage: Optional[float] = Field(None, ge=0, le=100, description="Percent of the final price")
    fee_amount: Optional[float] = Field(None, ge=0, description="Fixed fee, used when no percentage is set")
    refund_policy: Literal["full", "partial", "none"] = "full"


class Booking(BaseModel):
    """Terms-frozen outcome of a negotiation."""
    id: str = Field(..., description="Booking ID (ULID)")
    match_id: str
    listing_id: Optional[str] = None
    customer_id: str
    provider_id: str
    final_price: Optional[float] = None
    final_date: Optional[datetime] = None
    currency: Optional[str] = None
    required_terms: Literal["both", "price", "date"] = "both"
    status: BookingStatus = BookingStatus.PENDING
    cancellation_policy: CancellationPolicy = Field(default_factory=CancellationPolicy)
    cancellation_fee: Optional[float] = None
    cancellation_fee_applied: bool = False
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    confirmed_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    created_at: Optional[str] = None

    def has_party(self, user_id: Optional[str]) -> bool:
        return user_id is not None and user_id in (self.customer_id, self.provider_id)

    def missing_terms(self) -> list[str]:
        """Names of required terms that are not yet agreed."""
        missing = []
        if self.required_terms in ("both", "price") and self.final_price is None:
            missing.append("final_price")
        if self.required_terms in ("both", "date") and self.final_date is None:
            missing.append("final_date")
        return missing
