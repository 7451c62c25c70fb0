"""JWT access tokens (python-jose)."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import jwt

from backend.common.constants import UserRole
from backend.config import settings


def create_access_token(
    employee_id: uuid.UUID,
    role: UserRole,
    *,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Encode a signed access token carrying the employee id and role."""
    expires_at = datetime.now(timezone.utc) + (
        expires_delta or timedelta(hours=settings.JWT_EXPIRY_HOURS)
    )
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "type": "access",
        "exp": expires_at,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify signature and expiry. Raises ``jose.JWTError`` subclasses."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
