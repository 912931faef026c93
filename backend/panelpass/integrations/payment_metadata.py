"""
Helpers for the metadata we attach to provider payments.

Checkout attaches {user_id, session_id, is_anonymous, plan_type, plan_name}
to every payment. PayPal returns it as a JSON string in custom_id; Paystack
returns it as an object or, from some clients, as a JSON string.
"""

import json
from typing import Any, Dict, Optional

from panelpass.entitlements.models import SessionRef, SubjectRef, UserRef


def parse_metadata(raw: Any, plain_key: Optional[str] = None) -> Dict[str, Any]:
    """
    Decode payment metadata into a dict.

    Args:
        raw: Dict, JSON string or None
        plain_key: When set, a non-JSON string is returned as {plain_key: raw}

    Returns:
        Metadata dict (empty when nothing usable was sent)
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except ValueError:
            decoded = None
        if isinstance(decoded, dict):
            return decoded
        if plain_key:
            return {plain_key: raw}
    return {}


def is_anonymous(metadata: Dict[str, Any]) -> bool:
    value = metadata.get("is_anonymous")
    return value is True or (isinstance(value, str) and value.lower() == "true")


def subject_from_metadata(metadata: Dict[str, Any]) -> Optional[SubjectRef]:
    """
    Explicit subject carried by payment metadata.

    An anonymous purchase with a session id targets the session; otherwise a
    user id targets that user.
    """
    session_id = metadata.get("session_id")
    if is_anonymous(metadata) and session_id:
        return SessionRef(session_id=str(session_id))

    user_id = metadata.get("user_id")
    if user_id:
        return UserRef(user_id=str(user_id))

    return None
