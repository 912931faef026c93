"""
Error classes for payment reconciliation.
"""

from typing import Optional


class PanelPassError(Exception):
    """Base exception for payment and entitlement errors."""
    pass


class EventNormalizationError(PanelPassError):
    """Raised when a recognized provider event fails variant validation."""

    def __init__(self, provider: str, event_type: str, reason: str):
        self.provider = provider
        self.event_type = event_type
        self.reason = reason
        super().__init__(f"{provider} {event_type}: {reason}")


class SubjectResolutionError(PanelPassError):
    """Raised when no user or session matches a payment event."""

    def __init__(self, event_type: str, lookup: Optional[str] = None):
        self.event_type = event_type
        self.lookup = lookup
        message = f"No subject found for {event_type}"
        if lookup:
            message = f"{message} ({lookup})"
        super().__init__(message)


class EntitlementWriteError(PanelPassError):
    """Raised when an entitlement or day pass write fails."""
    pass


class ProfileNotFoundError(PanelPassError):
    """Raised when a profile id does not exist."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Profile not found: {user_id}")
