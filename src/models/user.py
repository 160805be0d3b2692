"""User profile model - the people on both sides of a match."""

from typing import Optional
from pydantic import BaseModel, Field


class UserProfile(BaseModel):
    """Public profile row from the users table."""
    id: str = Field(..., description="User ID (auth user id)")
    name: Optional[str] = Field(None, description="Display name")
    avatar_url: Optional[str] = None
    city: Optional[str] = None
    verification_status: str = Field(default="unverified", description="unverified, verified, pro")
    created_at: Optional[str] = None
    last_active: Optional[str] = None
    deleted_at: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None
