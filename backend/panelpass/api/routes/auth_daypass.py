"""
Authentication-completion hook.

The sign-in flow calls this once a session is established. If the browser
holds an anonymous Day Pass it is moved onto the signed-in account. The
hook never fails sign-in: the answer is always 200 with merged true/false.
"""

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from panelpass.api.cookies import get_session_id
from panelpass.auth.supabase import AuthenticatedUser, get_current_user
from panelpass.database.session import get_db_session
from panelpass.services.daypass_merger import DayPassMerger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth/daypass", tags=["auth"])


class MergeResponse(BaseModel):
    merged: bool


@router.post("/merge", response_model=MergeResponse)
async def merge_anonymous_daypass(
    request: Request,
    db: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
):
    session_id = get_session_id(request)
    if not session_id:
        return MergeResponse(merged=False)

    merged = DayPassMerger(db).merge(session_id, user.user_id)

    logger.info("Day Pass merge requested", extra={
        "user_id": user.user_id,
        "session_id": session_id,
        "merged": merged
    })
    return MergeResponse(merged=merged)
