"""Listing model."""

from typing import Literal, Optional
from pydantic import BaseModel, Field


class Listing(BaseModel):
    """Service listing owned by a provider."""
    id: str = Field(..., description="Listing ID")
    user_id: str = Field(..., description="Owner user ID")
    title: Optional[str] = Field(None, description="Listing title")
    category: Optional[str] = None
    status: str = Field(
        default="active",
        description="Status: active, matched, in_progress, completed, cancelled"
    )
    currency: Optional[str] = Field(None, description="ISO currency code")
    negotiated_terms: Literal["both", "price", "date"] = Field(
        default="both",
        description="Terms that must be agreed before a booking can be confirmed"
    )
    cancellation_hours: Optional[int] = Field(None, ge=0, description="Free cancellation cutoff in hours")
    cancellation_fee_enabled: bool = False
    cancellation_fee_percentage: Optional[float] = Field(None, ge=0, le=100)
    cancellation_fee_amount: Optional[float] = Field(None, ge=0)
    refund_policy: Optional[Literal["full", "partial", "none"]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"
