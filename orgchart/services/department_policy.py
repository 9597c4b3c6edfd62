"""
Field-level write policy for departments.

An actor is either an organization Admin or the Head of the department
being edited. Each actor kind has a fixed allow-list of writable fields;
the whole change set is judged before anything is written.
"""
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Mapping, Optional

from orgchart.core.security import AuthContext
from orgchart.models.department import Department
from orgchart.models.organization import OrgMemberRole


# Canonical order; the first offending field is reported in this order.
DEPARTMENT_FIELDS = (
    "name",
    "description",
    "color",
    "head_id",
    "parent_id",
    "display_order",
    "is_active",
)


class ActorKind(str, Enum):
    ADMIN = "admin"
    HEAD = "head"


@dataclass(frozen=True)
class Actor:
    """Resolved actor for one department."""
    kind: ActorKind
    member_id: str


FIELD_ALLOW_LIST: Mapping[ActorKind, FrozenSet[str]] = {
    ActorKind.ADMIN: frozenset(DEPARTMENT_FIELDS),
    ActorKind.HEAD: frozenset({"name", "description", "color"}),
}


@dataclass(frozen=True)
class AuthorizationDecision:
    """
    Verdict on a proposed change set.

    ``rejected_field`` is None when the actor may not edit the department
    at all.
    """
    allowed: bool
    actor: Optional[Actor] = None
    rejected_field: Optional[str] = None


def is_admin(ctx: AuthContext) -> bool:
    return ctx.role == OrgMemberRole.ADMIN.value


def resolve_actor(ctx: AuthContext, department: Department) -> Optional[Actor]:
    """Classify the caller relative to a department."""
    if is_admin(ctx):
        return Actor(kind=ActorKind.ADMIN, member_id=ctx.member_id)
    if department.head_id is not None and department.head_id == ctx.member_id:
        return Actor(kind=ActorKind.HEAD, member_id=ctx.member_id)
    return None


def _field_rank(field_name: str) -> tuple:
    if field_name in DEPARTMENT_FIELDS:
        return (DEPARTMENT_FIELDS.index(field_name), field_name)
    return (len(DEPARTMENT_FIELDS), field_name)


def authorize(
    ctx: AuthContext,
    department: Department,
    proposed_fields: Iterable[str],
) -> AuthorizationDecision:
    """
    Decide whether the caller may apply a change set to a department.

    Args:
        ctx: Caller's auth context.
        department: Department being edited.
        proposed_fields: Names of every field in the change set.

    Returns:
        AuthorizationDecision naming the first field the actor may not write.
    """
    actor = resolve_actor(ctx, department)
    if actor is None:
        return AuthorizationDecision(allowed=False)

    allowed_fields = FIELD_ALLOW_LIST[actor.kind]
    for field_name in sorted(set(proposed_fields), key=_field_rank):
        if field_name not in allowed_fields:
            return AuthorizationDecision(
                allowed=False, actor=actor, rejected_field=field_name
            )

    return AuthorizationDecision(allowed=True, actor=actor)


def can_create(ctx: AuthContext) -> bool:
    """Only admins create departments."""
    return is_admin(ctx)


def can_delete(ctx: AuthContext) -> bool:
    """Only admins delete departments, heads included for their own."""
    return is_admin(ctx)
