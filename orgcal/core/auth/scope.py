# orgcal/core/auth/scope.py
"""
Visibility scope filter.

Two renditions of the same rules: pure predicates (``can_view`` / ``can_edit``) for
objects already in memory, and SQL clauses (``visibility_clause``) for list queries.
Precedence, first match wins:

1. administrators see everything;
2. division leaders see their division;
3. office leaders see their office;
4. everybody else sees their department;
5. without a department, only what they created.

Shared targets widen visibility independently of the above. They never grant edit rights.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import and_, exists, false, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from orgcal.core.auth.actor import SCOPE_DEPARTMENT, SCOPE_DIVISION, SCOPE_OFFICE, Actor

BREADTH_ALL = "ALL"
BREADTH_DIVISION = "DIVISION"
BREADTH_OFFICE = "OFFICE"
BREADTH_DEPARTMENT = "DEPARTMENT"
BREADTH_OWN = "OWN"


@dataclass(frozen=True)
class ShareRule:
    """In-memory shared target: office AND (department?) AND (position in set?)."""

    office_id: int
    department_id: Optional[int] = None
    position_labels: tuple[str, ...] = field(default_factory=tuple)


def view_breadth(actor: Actor) -> str:
    if actor.is_admin:
        return BREADTH_ALL
    if actor.scope == SCOPE_DIVISION and actor.division_id is not None:
        return BREADTH_DIVISION
    if actor.scope == SCOPE_OFFICE and actor.office_id is not None:
        return BREADTH_OFFICE
    if actor.department_id is not None:
        return BREADTH_DEPARTMENT
    return BREADTH_OWN


def in_scope(actor: Actor, entity) -> bool:
    """Direct visibility. The creator always sees their own entities."""
    if entity.creator_id == actor.id:
        return True
    breadth = view_breadth(actor)
    if breadth == BREADTH_ALL:
        return True
    if breadth == BREADTH_DIVISION:
        return entity.division_id == actor.division_id
    if breadth == BREADTH_OFFICE:
        return entity.office_id == actor.office_id
    if breadth == BREADTH_DEPARTMENT:
        return entity.department_id == actor.department_id
    return False


def share_matches(actor: Actor, share) -> bool:
    if actor.office_id is None or share.office_id != actor.office_id:
        return False
    if share.department_id is not None and share.department_id != actor.department_id:
        return False
    positions = tuple(share.position_labels or ())
    if positions and actor.position not in positions:
        return False
    return True


def can_view(actor: Actor, entity, shares: Iterable = ()) -> bool:
    if in_scope(actor, entity):
        return True
    return any(share_matches(actor, share) for share in shares)


def can_edit(actor: Actor, entity) -> bool:
    """Edit rights: creator, admin, or a leader within their own breadth. Sharing never counts."""
    if actor.is_admin or entity.creator_id == actor.id:
        return True
    if actor.scope == SCOPE_DIVISION and actor.division_id is not None:
        return entity.division_id == actor.division_id
    if actor.scope == SCOPE_OFFICE and actor.office_id is not None:
        return entity.office_id == actor.office_id
    if actor.scope == SCOPE_DEPARTMENT and actor.department_id is not None:
        return entity.department_id == actor.department_id
    return False


# --------------------------------------------------------------------------- #
#                                SQL rendition                                #
# --------------------------------------------------------------------------- #
def scope_clause(actor: Actor, model) -> ColumnElement[bool]:
    breadth = view_breadth(actor)
    own = model.creator_id == actor.id
    if breadth == BREADTH_ALL:
        return true()
    if breadth == BREADTH_DIVISION:
        return or_(own, model.division_id == actor.division_id)
    if breadth == BREADTH_OFFICE:
        return or_(own, model.office_id == actor.office_id)
    if breadth == BREADTH_DEPARTMENT:
        return or_(own, model.department_id == actor.department_id)
    return own


def shared_clause(actor: Actor, model) -> ColumnElement[bool]:
    """EXISTS over the shared-target rows of ``model`` (Event or EventSeries)."""
    from orgcal.core.calendar.models import Event, SharedTarget, SharedTargetPosition

    if actor.office_id is None:
        return false()

    owner = SharedTarget.event_id == model.id if model is Event else SharedTarget.series_id == model.id
    department_ok = (
        SharedTarget.department_id.is_(None)
        if actor.department_id is None
        else or_(SharedTarget.department_id.is_(None), SharedTarget.department_id == actor.department_id)
    )
    any_position = exists(
        select(SharedTargetPosition.id).where(SharedTargetPosition.shared_target_id == SharedTarget.id)
    )
    position_ok = (
        ~any_position
        if actor.position is None
        else or_(
            ~any_position,
            exists(
                select(SharedTargetPosition.id).where(
                    SharedTargetPosition.shared_target_id == SharedTarget.id,
                    SharedTargetPosition.position == actor.position,
                )
            ),
        )
    )
    return exists(
        select(SharedTarget.id).where(
            and_(owner, SharedTarget.office_id == actor.office_id, department_ok, position_ok)
        )
    )


def visibility_clause(actor: Actor, model) -> ColumnElement[bool]:
    if actor.is_admin:
        return true()
    return or_(scope_clause(actor, model), shared_clause(actor, model))


__all__ = [
    "ShareRule", "view_breadth", "in_scope", "share_matches", "can_view", "can_edit",
    "scope_clause", "shared_clause", "visibility_clause",
]
