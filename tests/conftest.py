"""
Shared fixtures: an in-memory SQLite store seeded with two organizations.

org1: A (root) -> B -> C, plus a standalone root R.
      admin, head of C, a plain member assigned to B, and a job filed under B.
org2: X (root) with its own admin.
"""
from dataclasses import dataclass
from typing import List

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

import orgchart.models  # noqa: F401
from orgchart.core.database import Base, build_session_factory
from orgchart.core.security import AuthContext
from orgchart.models import (
    Account,
    Department,
    Job,
    Organization,
    OrganizationMember,
    OrgMemberRole,
)
from orgchart.services.audit import AuditEntry, AuditLogger


@dataclass
class OrgChart:
    """IDs of the seeded rows."""
    org1: str
    org2: str
    a: str
    b: str
    c: str
    r: str
    x: str
    admin: AuthContext
    head_c: AuthContext
    member_b: AuthContext
    admin_org2: AuthContext
    job_b: str


class RecordingAuditWriter:
    """Audit writer that keeps entries in memory."""

    def __init__(self):
        self.entries: List[AuditEntry] = []

    async def __call__(self, entry: AuditEntry) -> None:
        self.entries.append(entry)


def context_for(member: OrganizationMember) -> AuthContext:
    """AuthContext for a seeded member."""
    return AuthContext(
        organization_id=member.organization_id,
        role=member.role,
        member_id=member.id,
        account_id=member.account_id,
    )


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    factory = build_session_factory(engine)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def org_chart(session) -> OrgChart:
    org1 = Organization(id="org-1", name="Acme", slug="acme")
    org2 = Organization(id="org-2", name="Globex", slug="globex")

    accounts = [
        Account(id="acc-admin", name="Ada Admin", email="ada@acme.test"),
        Account(id="acc-head", name="Hal Head", email="hal@acme.test"),
        Account(id="acc-member", name="Mia Member", email="mia@acme.test"),
        Account(id="acc-globex", name="Gus Globex", email="gus@globex.test"),
    ]

    admin = OrganizationMember(
        id="mem-admin", organization_id="org-1", account_id="acc-admin",
        role=OrgMemberRole.ADMIN.value, title="CTO",
    )
    head_c = OrganizationMember(
        id="mem-head", organization_id="org-1", account_id="acc-head",
        role=OrgMemberRole.HIRING_MANAGER.value, title="Platform Lead",
    )
    member_b = OrganizationMember(
        id="mem-member", organization_id="org-1", account_id="acc-member",
        role=OrgMemberRole.MEMBER.value, title="Engineer", department_id="dept-b",
    )
    admin_org2 = OrganizationMember(
        id="mem-globex", organization_id="org-2", account_id="acc-globex",
        role=OrgMemberRole.ADMIN.value,
    )

    departments = [
        Department(id="dept-a", organization_id="org-1", name="Engineering",
                   slug="engineering", display_order=0),
        Department(id="dept-b", organization_id="org-1", name="Backend",
                   slug="backend", parent_id="dept-a", display_order=0),
        Department(id="dept-c", organization_id="org-1", name="Infrastructure",
                   slug="infrastructure", parent_id="dept-b", head_id="mem-head",
                   color="blue", display_order=0),
        Department(id="dept-r", organization_id="org-1", name="Sales",
                   slug="sales", display_order=1),
        Department(id="dept-x", organization_id="org-2", name="Engineering",
                   slug="engineering", display_order=0),
    ]
    job_b = Job(id="job-b", organization_id="org-1", title="Backend Engineer",
                department_id="dept-b")

    session.add_all([org1, org2, *accounts, admin, head_c, member_b, admin_org2,
                     *departments, job_b])
    await session.commit()

    return OrgChart(
        org1="org-1", org2="org-2",
        a="dept-a", b="dept-b", c="dept-c", r="dept-r", x="dept-x",
        admin=context_for(admin), head_c=context_for(head_c),
        member_b=context_for(member_b), admin_org2=context_for(admin_org2),
        job_b="job-b",
    )


@pytest.fixture
def audit_writer() -> RecordingAuditWriter:
    return RecordingAuditWriter()


@pytest.fixture
def audit(audit_writer) -> AuditLogger:
    return AuditLogger(writer=audit_writer, enabled=True)
