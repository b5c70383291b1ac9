"""Auth service — access token issuance."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import jwt

from opsdesk.config import settings
from opsdesk.core_hr.models import Employee


# ── JWT helpers ─────────────────────────────────────────────────────

def create_access_token(employee: Employee) -> tuple[str, int]:
    """Return (encoded_jwt, expires_in_seconds)."""
    expires_in = settings.JWT_EXPIRY_HOURS * 3600
    payload = {
        "sub": str(employee.id),
        "role": employee.role.value,
        "type": "access",
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS),
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return token, expires_in
