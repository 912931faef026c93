"""
Business logic services.
"""

from panelpass.services.daypass_tracker import DayPassTracker
from panelpass.services.daypass_merger import DayPassMerger
from panelpass.services.entitlement_service import EntitlementService
from panelpass.services.subscription_reconciler import SubscriptionReconciler

__all__ = ["DayPassTracker", "DayPassMerger", "EntitlementService", "SubscriptionReconciler"]
