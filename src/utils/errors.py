"""Error handling utilities."""

from typing import Optional


class MarketplaceError(Exception):
    """Base exception for the marketplace backend."""
    status_code = 500

    def __init__(self, message: str = "", details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotAuthenticated(MarketplaceError):
    """No actor could be resolved for the request."""
    status_code = 401


class NotParticipant(MarketplaceError):
    """Actor is not a party of the match or booking."""
    status_code = 403


class InvalidTarget(MarketplaceError):
    """Swipe target does not resolve to an active listing or user."""
    status_code = 404


class TargetNotFound(MarketplaceError):
    """Referenced user, listing, match or booking does not exist."""
    status_code = 404


class SelfMatchNotAllowed(MarketplaceError):
    """Actor and counterpart are the same user."""
    status_code = 400


class ProposalNotFound(MarketplaceError):
    """Referenced message carries no parseable proposal."""
    status_code = 404


class InvalidTransition(MarketplaceError):
    """Lifecycle transition not permitted from the current state."""
    status_code = 409


class IncompleteNegotiation(MarketplaceError):
    """Booking is missing negotiated terms."""
    status_code = 422


class SuperLikeQuotaExceeded(MarketplaceError):
    """Daily super like allowance used up."""
    status_code = 429


class StoreUnavailable(MarketplaceError):
    """Supabase operation error."""
    status_code = 503
