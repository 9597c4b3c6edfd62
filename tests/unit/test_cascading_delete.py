"""
Unit tests for department deletion and the re-linking of its dependents.
"""
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from orgchart.models import Department, Job, OrganizationMember
from orgchart.services.department import (
    DepartmentForbiddenError,
    DepartmentNotFoundError,
    DepartmentService,
    DepartmentTransactionError,
)


@pytest.fixture
def service(session, audit) -> DepartmentService:
    return DepartmentService(session, audit=audit)


async def snapshot(session):
    """Department parents, member and job assignments as plain dicts."""
    session.expire_all()
    departments = dict((await session.execute(
        select(Department.id, Department.parent_id)
    )).all())
    members = dict((await session.execute(
        select(OrganizationMember.id, OrganizationMember.department_id)
    )).all())
    jobs = dict((await session.execute(select(Job.id, Job.department_id))).all())
    return departments, members, jobs


class TestDeleteDepartment:
    """Tests for DepartmentService.delete_department."""

    @pytest.mark.asyncio
    async def test_children_move_to_grandparent(self, service, session, org_chart):
        await service.delete_department(org_chart.admin, org_chart.b)

        departments, members, jobs = await snapshot(session)
        assert org_chart.b not in departments
        assert departments[org_chart.c] == org_chart.a
        assert members["mem-member"] is None
        assert jobs[org_chart.job_b] is None

    @pytest.mark.asyncio
    async def test_children_of_root_become_roots(self, service, session, org_chart):
        await service.delete_department(org_chart.admin, org_chart.a)

        departments, _, _ = await snapshot(session)
        assert departments[org_chart.b] is None
        assert departments[org_chart.c] == org_chart.b

    @pytest.mark.asyncio
    async def test_leaf_delete_leaves_others_untouched(self, service, session, org_chart):
        before = await snapshot(session)
        await service.delete_department(org_chart.admin, org_chart.r)
        departments, members, jobs = await snapshot(session)

        expected = dict(before[0])
        del expected[org_chart.r]
        assert departments == expected
        assert members == before[1]
        assert jobs == before[2]

    @pytest.mark.asyncio
    async def test_other_organization_is_untouched(self, service, session, org_chart):
        await service.delete_department(org_chart.admin, org_chart.a)
        departments, _, _ = await snapshot(session)
        assert org_chart.x in departments

    @pytest.mark.asyncio
    async def test_audit_entry(self, service, org_chart, audit, audit_writer):
        await service.delete_department(org_chart.admin, org_chart.b)
        await audit.drain()

        entry = audit_writer.entries[0]
        assert entry.action == "DELETE"
        assert entry.entity_id == org_chart.b
        assert entry.metadata == {"name": "Backend", "organization_id": org_chart.org1}

    @pytest.mark.asyncio
    async def test_head_cannot_delete_own_department(self, service, session, org_chart):
        with pytest.raises(DepartmentForbiddenError):
            await service.delete_department(org_chart.head_c, org_chart.c)
        departments, _, _ = await snapshot(session)
        assert org_chart.c in departments

    @pytest.mark.asyncio
    async def test_member_cannot_delete(self, service, org_chart):
        with pytest.raises(DepartmentForbiddenError):
            await service.delete_department(org_chart.member_b, org_chart.b)

    @pytest.mark.asyncio
    async def test_unknown_department(self, service, org_chart):
        with pytest.raises(DepartmentNotFoundError):
            await service.delete_department(org_chart.admin, "missing")

    @pytest.mark.asyncio
    async def test_department_of_other_organization(self, service, session, org_chart):
        with pytest.raises(DepartmentNotFoundError):
            await service.delete_department(org_chart.admin_org2, org_chart.a)
        departments, _, _ = await snapshot(session)
        assert org_chart.a in departments

    @pytest.mark.asyncio
    async def test_failure_on_last_step_rolls_everything_back(
        self, service, session, org_chart, audit, audit_writer, monkeypatch
    ):
        before = await snapshot(session)
        original_execute = session.execute

        async def failing_execute(statement, *args, **kwargs):
            if getattr(statement, "is_delete", False):
                raise OperationalError("DELETE FROM departments", {}, Exception("disk I/O error"))
            return await original_execute(statement, *args, **kwargs)

        monkeypatch.setattr(session, "execute", failing_execute)

        with pytest.raises(DepartmentTransactionError):
            await service.delete_department(org_chart.admin, org_chart.b)

        monkeypatch.undo()
        assert await snapshot(session) == before

        await audit.drain()
        assert audit_writer.entries == []
