"""
Subscription access endpoints.

Read-only checks used by the reader UI to decide whether to show premium
pages or the subscription gate.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from panelpass.api.cookies import get_session_id
from panelpass.auth.supabase import AuthenticatedUser, get_current_user_optional
from panelpass.database.session import get_db_session
from panelpass.services.daypass_tracker import DayPassTracker
from panelpass.services.entitlement_service import EntitlementService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


class AnonymousDayPassResponse(BaseModel):
    has_active_day_pass: bool = Field(..., serialization_alias="hasActiveDayPass")

    model_config = ConfigDict(populate_by_name=True)


class AccessResponse(BaseModel):
    has_access: bool
    source: Optional[str] = None
    tier: Optional[str] = None
    status: Optional[str] = None
    expires_at: Optional[str] = None


@router.get(
    "/check-anonymous",
    response_model=AnonymousDayPassResponse,
    response_model_by_alias=True,
)
async def check_anonymous_daypass(
    request: Request,
    db: Session = Depends(get_db_session),
):
    """Whether the browser's Day Pass cookie maps to an active, unmerged pass."""
    session_id = get_session_id(request)
    if not session_id:
        return AnonymousDayPassResponse(has_active_day_pass=False)

    return AnonymousDayPassResponse(has_active_day_pass=DayPassTracker(db).is_active(session_id))


@router.get("/access", response_model=AccessResponse)
async def check_access(
    request: Request,
    db: Session = Depends(get_db_session),
    user: Optional[AuthenticatedUser] = Depends(get_current_user_optional),
):
    """Access for the signed-in user and/or the Day Pass cookie session."""
    service = EntitlementService(db)
    result = service.check_access(
        user_id=user.user_id if user else None,
        session_id=get_session_id(request),
    )
    return AccessResponse(**result.to_dict())
