"""Repository layer over the managed Postgres store."""

from panelpass.repositories.profile_repository import (
    ProfileRepository,
    profile_to_entitlement,
)
from panelpass.repositories.daypass_repository import DayPassRepository

__all__ = [
    "ProfileRepository",
    "profile_to_entitlement",
    "DayPassRepository",
]
