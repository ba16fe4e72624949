"""Diagnostic decoding of Microsoft Graph bearer tokens.

Uses python-jose to read the JWT payload WITHOUT verifying the signature. The
result is only logged; Graph is the authority on whether a token is valid, so
nothing here may influence a request.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

logger = logging.getLogger(__name__)

# Claims worth logging; everything else (names, ids of devices, etc.) is dropped.
DIAGNOSTIC_CLAIMS = ("aud", "tid", "scp", "roles", "appid", "upn", "exp")


def get_unverified_claims(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the JWT payload, or None if the token is not a decodable JWT."""
    if not token:
        return None
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return None


def describe_token(token: Optional[str]) -> Dict[str, Any]:
    """Summarize scopes, tenant and expiry of a token for debug logging.

    Returns an empty dict for opaque or malformed tokens.
    """
    claims = get_unverified_claims(token)
    if not claims:
        return {}

    summary = {key: claims[key] for key in DIAGNOSTIC_CLAIMS if key in claims}
    if isinstance(summary.get("scp"), str):
        summary["scp"] = summary["scp"].split()

    exp = claims.get("exp")
    if isinstance(exp, (int, float)):
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
        summary["exp"] = expires_at.isoformat()
        summary["expired"] = expires_at <= datetime.now(timezone.utc)
    return summary
