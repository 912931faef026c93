"""PanelPass payment and entitlement backend."""

__version__ = "0.4.0"
