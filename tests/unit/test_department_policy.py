"""
Unit tests for the department field-level write policy.
"""
from orgchart.core.security import AuthContext
from orgchart.models.department import Department
from orgchart.models.organization import OrgMemberRole
from orgchart.services.department_policy import (
    DEPARTMENT_FIELDS,
    ActorKind,
    authorize,
    can_create,
    can_delete,
    resolve_actor,
)


def make_ctx(role: OrgMemberRole, member_id: str = "mem-1") -> AuthContext:
    return AuthContext(
        organization_id="org-1",
        role=role.value,
        member_id=member_id,
        account_id=f"acc-{member_id}",
    )


def make_department(head_id=None) -> Department:
    return Department(id="dept-1", organization_id="org-1", name="Platform",
                      slug="platform", head_id=head_id)


class TestResolveActor:
    """Tests for actor classification."""

    def test_admin(self):
        actor = resolve_actor(make_ctx(OrgMemberRole.ADMIN), make_department())
        assert actor.kind == ActorKind.ADMIN

    def test_admin_wins_over_head(self):
        ctx = make_ctx(OrgMemberRole.ADMIN, member_id="mem-1")
        actor = resolve_actor(ctx, make_department(head_id="mem-1"))
        assert actor.kind == ActorKind.ADMIN

    def test_head_of_this_department(self):
        ctx = make_ctx(OrgMemberRole.MEMBER, member_id="mem-1")
        actor = resolve_actor(ctx, make_department(head_id="mem-1"))
        assert actor.kind == ActorKind.HEAD
        assert actor.member_id == "mem-1"

    def test_head_of_another_department_is_nobody(self):
        ctx = make_ctx(OrgMemberRole.HIRING_MANAGER, member_id="mem-1")
        assert resolve_actor(ctx, make_department(head_id="mem-2")) is None

    def test_department_without_head(self):
        ctx = make_ctx(OrgMemberRole.RECRUITER)
        assert resolve_actor(ctx, make_department()) is None


class TestAuthorize:
    """Tests for change-set authorization."""

    def test_admin_may_write_every_field(self):
        decision = authorize(make_ctx(OrgMemberRole.ADMIN), make_department(), DEPARTMENT_FIELDS)
        assert decision.allowed
        assert decision.rejected_field is None

    def test_head_may_write_presentational_fields(self):
        ctx = make_ctx(OrgMemberRole.MEMBER)
        decision = authorize(ctx, make_department(head_id="mem-1"),
                             ["name", "description", "color"])
        assert decision.allowed
        assert decision.actor.kind == ActorKind.HEAD

    def test_head_rejected_on_structural_field(self):
        ctx = make_ctx(OrgMemberRole.MEMBER)
        decision = authorize(ctx, make_department(head_id="mem-1"), ["name", "head_id"])
        assert not decision.allowed
        assert decision.rejected_field == "head_id"

    def test_first_rejected_field_follows_canonical_order(self):
        ctx = make_ctx(OrgMemberRole.MEMBER)
        decision = authorize(
            ctx,
            make_department(head_id="mem-1"),
            ["is_active", "display_order", "parent_id", "name"],
        )
        assert decision.rejected_field == "parent_id"

    def test_unknown_field_is_rejected_even_for_admin(self):
        decision = authorize(make_ctx(OrgMemberRole.ADMIN), make_department(), ["slug"])
        assert not decision.allowed
        assert decision.rejected_field == "slug"

    def test_outsider_is_rejected_without_field(self):
        decision = authorize(make_ctx(OrgMemberRole.VIEWER), make_department(), ["name"])
        assert not decision.allowed
        assert decision.actor is None
        assert decision.rejected_field is None

    def test_empty_change_set_is_allowed_for_head(self):
        ctx = make_ctx(OrgMemberRole.MEMBER)
        assert authorize(ctx, make_department(head_id="mem-1"), []).allowed


class TestCreateDelete:
    """Create and delete are admin-only."""

    def test_admin(self):
        ctx = make_ctx(OrgMemberRole.ADMIN)
        assert can_create(ctx)
        assert can_delete(ctx)

    def test_non_admin_roles(self):
        for role in (OrgMemberRole.RECRUITER, OrgMemberRole.HIRING_MANAGER,
                     OrgMemberRole.MEMBER, OrgMemberRole.VIEWER):
            ctx = make_ctx(role)
            assert not can_create(ctx)
            assert not can_delete(ctx)
