# orgcal/core/auth/actor.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

ROLE_ADMIN = "ADMIN"
ROLE_USER = "USER"

SCOPE_DIVISION = "DIVISION"
SCOPE_OFFICE = "OFFICE"
SCOPE_DEPARTMENT = "DEPARTMENT"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as seen by the scope filter and the services."""

    id: int
    role: str = ROLE_USER
    position: Optional[str] = None
    scope: Optional[str] = None  # leadership breadth, None for ordinary members
    department_id: Optional[int] = None
    office_id: Optional[int] = None
    division_id: Optional[int] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_leader(self) -> bool:
        return self.scope in (SCOPE_DIVISION, SCOPE_OFFICE, SCOPE_DEPARTMENT)

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(
            id=user.id,
            role=user.role,
            position=user.position,
            scope=user.scope,
            department_id=user.department_id,
            office_id=user.office_id,
            division_id=user.division_id,
            name=user.name,
        )
