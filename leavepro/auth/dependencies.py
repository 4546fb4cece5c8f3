"""Auth dependencies — bearer JWT decoding and role gates.

Tokens are issued elsewhere; this module only verifies them and turns the
``sub`` / ``role`` claims into a ``CallerIdentity``.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavepro.auth.schemas import CallerIdentity
from leavepro.common.constants import UserRole
from leavepro.common.exceptions import ForbiddenError
from leavepro.config import settings
from leavepro.core_hr.models import Employee
from leavepro.database import get_db

logger = logging.getLogger(__name__)


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_identity(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> CallerIdentity:
    """Validate the JWT and return the caller's id and role."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    try:
        employee_id = uuid.UUID(str(payload["sub"]))
        role = UserRole(payload.get("role", UserRole.employee.value))
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token claims.")

    # Token must still belong to an active account.
    result = await db.execute(
        select(Employee.id).where(
            Employee.id == employee_id, Employee.is_active.is_(True),
        )
    )
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=401, detail="User account is inactive or not found.")

    return CallerIdentity(id=employee_id, role=role)


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership."""

    async def _check(
        caller: CallerIdentity = Depends(get_current_identity),
    ) -> CallerIdentity:
        if caller.role not in allowed_roles:
            logger.info("Caller %s with role %s refused", caller.id, caller.role.value)
            raise ForbiddenError(
                detail=f"Role '{caller.role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return caller

    return _check
