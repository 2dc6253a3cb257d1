"""Auth Pydantic schemas."""

from __future__ import annotations

import uuid

from pydantic import BaseModel

from leave_engine.common.constants import UserRole


class CurrentUser(BaseModel):
    """Identity handed to the engine by the identity service's access token."""

    employee_id: uuid.UUID
    role: UserRole = UserRole.employee
