"""
Shared pieces of the payment webhook routes.
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class WebhookResponse(BaseModel):
    """Standard webhook acknowledgement."""
    received: bool = True
    message: str = "Webhook processed"
    outcome: Optional[str] = None


def decode_envelope(body: bytes, type_field: str) -> Dict[str, Any]:
    """
    Decode a webhook body and check it names an event type.

    Raises:
        HTTPException: 400 on malformed JSON or a missing event type
    """
    try:
        envelope = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("Invalid JSON in webhook body")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON body"
        )

    event_type = envelope.get(type_field) if isinstance(envelope, dict) else None
    if not isinstance(event_type, str) or not event_type:
        logger.error("Webhook body has no event type", extra={"type_field": type_field})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing event type"
        )

    return envelope
