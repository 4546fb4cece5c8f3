"""Caller identity passed explicitly into every service call."""

import uuid

from pydantic import BaseModel, ConfigDict

from leavepro.common.constants import UserRole


class CallerIdentity(BaseModel):
    """Who is calling, as asserted by an already-issued access token."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin
