"""
Entitlement domain: value types, duration policy and errors.
"""

from panelpass.entitlements.models import (
    CorrelationKey,
    CorrelationRefs,
    Entitlement,
    EventKind,
    PaymentEvent,
    SessionRef,
    SubjectRef,
    UserRef,
)
from panelpass.entitlements.errors import (
    EntitlementWriteError,
    EventNormalizationError,
    PanelPassError,
    ProfileNotFoundError,
    SubjectResolutionError,
)

__all__ = [
    "CorrelationKey",
    "CorrelationRefs",
    "Entitlement",
    "EventKind",
    "PaymentEvent",
    "SessionRef",
    "SubjectRef",
    "UserRef",
    "EntitlementWriteError",
    "EventNormalizationError",
    "PanelPassError",
    "ProfileNotFoundError",
    "SubjectResolutionError",
]
