"""
Department management service; the only writer of the departments table.
Every lookup is scoped to the caller's organization.

Provides:
- Department create / partial update / cascading delete
- Department detail, flat list and tree queries
- Reparent validation (scope, cycles) and slug maintenance on rename
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orgchart.core.config import get_settings
from orgchart.core.security import AuthContext
from orgchart.models.department import DEPARTMENT_COLORS, Department
from orgchart.models.organization import Job, OrganizationMember
from orgchart.services.audit import AuditEntry, AuditLogger, audit_logger
from orgchart.services.department_policy import authorize, can_create, can_delete, resolve_actor
from orgchart.services.hierarchy import (
    DepartmentCounts,
    DepartmentNode,
    HierarchyValidator,
    build_department_tree,
)
from orgchart.services.slug import SlugAllocator

logger = logging.getLogger(__name__)


class DepartmentServiceError(Exception):
    """Base exception for department service errors."""
    pass


class DepartmentNotFoundError(DepartmentServiceError):
    """Department not found in the caller's organization."""
    pass


class DepartmentForbiddenError(DepartmentServiceError):
    """Caller may not perform the operation, or may not write a field."""
    def __init__(self, message: str = "Forbidden", field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class DepartmentValidationError(DepartmentServiceError):
    """Proposed values are malformed or violate a hierarchy invariant."""
    pass


class ParentDepartmentNotFoundError(DepartmentValidationError):
    """Parent department does not exist in the organization."""
    pass


class DepartmentHeadNotFoundError(DepartmentValidationError):
    """Department head is not a member of the organization."""
    pass


class CircularReferenceError(DepartmentValidationError):
    """Reparenting would make a department its own ancestor."""
    pass


class DepartmentTransactionError(DepartmentServiceError):
    """The store could not commit the change; nothing was applied."""
    pass


@dataclass
class HeadPreview:
    id: str
    title: Optional[str]
    name: Optional[str]
    avatar: Optional[str]


@dataclass
class MemberPreview:
    id: str
    title: Optional[str]
    role: str
    name: Optional[str]
    email: str
    avatar: Optional[str]


@dataclass
class ChildSummary:
    id: str
    name: str
    slug: str
    color: Optional[str]
    member_count: int
    job_count: int


@dataclass
class DepartmentSummary:
    """A department with its aggregate counts."""
    department: Department
    counts: DepartmentCounts


@dataclass
class DepartmentDetail:
    """Single-department read model."""
    department: Department
    counts: DepartmentCounts
    head: Optional[HeadPreview] = None
    children: List[ChildSummary] = field(default_factory=list)
    members: List[MemberPreview] = field(default_factory=list)
    ancestors: List[Department] = field(default_factory=list)


# Fields that may be omitted from an update but never set to null
NON_NULLABLE_FIELDS = ("name", "display_order", "is_active")


class DepartmentService:
    """
    Department management service.

    Validation and authorization run before anything is written; each
    mutation is committed as one transaction and audited afterwards.
    """

    def __init__(
        self,
        db: AsyncSession,
        audit: Optional[AuditLogger] = None,
        slugs: Optional[SlugAllocator] = None,
        hierarchy: Optional[HierarchyValidator] = None,
    ):
        self.db = db
        self.audit = audit or audit_logger
        self.slugs = slugs or SlugAllocator(db)
        self.hierarchy = hierarchy or HierarchyValidator(db)

    # ==================== Read Operations ====================

    async def get_department(
        self, organization_id: str, department_id: str
    ) -> Optional[Department]:
        """Get a department by ID within an organization."""
        stmt = select(Department).where(
            Department.id == department_id,
            Department.organization_id == organization_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def check_update_access(self, ctx: AuthContext, department_id: str) -> Department:
        """
        Resolve a department and make sure the caller may edit it at all.

        Runs before the request body is looked at, so an unknown department
        or an outsider gets 404/403 whatever they sent. Per-field rules are
        applied later by ``update_department``.

        Raises:
            DepartmentNotFoundError: If the ID does not resolve in the organization.
            DepartmentForbiddenError: If the caller is neither an admin nor the head.
        """
        department = await self.get_department(ctx.organization_id, department_id)
        if department is None:
            raise DepartmentNotFoundError(f"Department with ID {department_id} not found")
        if resolve_actor(ctx, department) is None:
            raise DepartmentForbiddenError()
        return department

    async def _load_for_write(
        self, organization_id: str, department_id: str
    ) -> Department:
        stmt = (
            select(Department)
            .where(
                Department.id == department_id,
                Department.organization_id == organization_id,
            )
            .with_for_update()
        )
        result = await self.db.execute(stmt)
        department = result.scalar_one_or_none()
        if department is None:
            raise DepartmentNotFoundError(f"Department with ID {department_id} not found")
        return department

    async def _get_counts(
        self, organization_id: str, department_ids: Optional[List[str]] = None
    ) -> Dict[str, DepartmentCounts]:
        """Member, job and child counts keyed by department ID."""
        counts: Dict[str, DepartmentCounts] = {}

        def restrict(stmt, column):
            if department_ids is not None:
                stmt = stmt.where(column.in_(department_ids))
            return stmt

        member_stmt = restrict(
            select(OrganizationMember.department_id, func.count(OrganizationMember.id))
            .where(
                OrganizationMember.organization_id == organization_id,
                OrganizationMember.department_id.isnot(None),
            )
            .group_by(OrganizationMember.department_id),
            OrganizationMember.department_id,
        )
        for dept_id, count in (await self.db.execute(member_stmt)).all():
            counts.setdefault(dept_id, DepartmentCounts()).members = count

        job_stmt = restrict(
            select(Job.department_id, func.count(Job.id))
            .where(
                Job.organization_id == organization_id,
                Job.department_id.isnot(None),
            )
            .group_by(Job.department_id),
            Job.department_id,
        )
        for dept_id, count in (await self.db.execute(job_stmt)).all():
            counts.setdefault(dept_id, DepartmentCounts()).jobs = count

        child_stmt = restrict(
            select(Department.parent_id, func.count(Department.id))
            .where(
                Department.organization_id == organization_id,
                Department.parent_id.isnot(None),
            )
            .group_by(Department.parent_id),
            Department.parent_id,
        )
        for dept_id, count in (await self.db.execute(child_stmt)).all():
            counts.setdefault(dept_id, DepartmentCounts()).children = count

        return counts

    async def get_department_detail(
        self, organization_id: str, department_id: str
    ) -> DepartmentDetail:
        """
        Get a department with its head, active children, a member preview,
        aggregate counts and ancestor chain.

        Raises:
            DepartmentNotFoundError: If the ID does not resolve in the organization.
        """
        stmt = (
            select(Department)
            .where(
                Department.id == department_id,
                Department.organization_id == organization_id,
            )
            .options(selectinload(Department.head))
        )
        department = (await self.db.execute(stmt)).scalar_one_or_none()
        if department is None:
            raise DepartmentNotFoundError(f"Department with ID {department_id} not found")

        children_stmt = (
            select(Department)
            .where(
                Department.parent_id == department.id,
                Department.organization_id == organization_id,
                Department.is_active.is_(True),
            )
            .order_by(Department.display_order, Department.name)
        )
        children = list((await self.db.execute(children_stmt)).scalars().all())

        members_stmt = (
            select(OrganizationMember)
            .where(
                OrganizationMember.department_id == department.id,
                OrganizationMember.organization_id == organization_id,
            )
            .order_by(OrganizationMember.created_at, OrganizationMember.id)
            .limit(get_settings().DEPARTMENT_MEMBER_PREVIEW_LIMIT)
        )
        members = list((await self.db.execute(members_stmt)).scalars().all())

        counts = await self._get_counts(
            organization_id, [department.id] + [child.id for child in children]
        )

        head = None
        if department.head is not None:
            head = HeadPreview(
                id=department.head.id,
                title=department.head.title,
                name=department.head.account.name,
                avatar=department.head.account.avatar,
            )

        return DepartmentDetail(
            department=department,
            counts=counts.get(department.id, DepartmentCounts()),
            head=head,
            children=[
                ChildSummary(
                    id=child.id,
                    name=child.name,
                    slug=child.slug,
                    color=child.color,
                    member_count=counts.get(child.id, DepartmentCounts()).members,
                    job_count=counts.get(child.id, DepartmentCounts()).jobs,
                )
                for child in children
            ],
            members=[
                MemberPreview(
                    id=member.id,
                    title=member.title,
                    role=member.role,
                    name=member.account.name,
                    email=member.account.email,
                    avatar=member.account.avatar,
                )
                for member in members
            ],
            ancestors=await self.hierarchy.get_ancestors(department.id, organization_id),
        )

    async def _get_all(self, organization_id: str) -> List[Department]:
        stmt = (
            select(Department)
            .where(Department.organization_id == organization_id)
            .order_by(Department.display_order, Department.name)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_departments(self, organization_id: str) -> List[DepartmentSummary]:
        """All departments of an organization with counts, in display order."""
        departments = await self._get_all(organization_id)
        counts = await self._get_counts(organization_id)
        return [
            DepartmentSummary(department=dept, counts=counts.get(dept.id, DepartmentCounts()))
            for dept in departments
        ]

    async def get_department_tree(self, organization_id: str) -> List[DepartmentNode]:
        """The organization's department forest."""
        departments = await self._get_all(organization_id)
        counts = await self._get_counts(organization_id)
        return build_department_tree(departments, counts)

    # ==================== Validation Helpers ====================

    async def _ensure_parent(self, organization_id: str, parent_id: str) -> None:
        if await self.get_department(organization_id, parent_id) is None:
            raise ParentDepartmentNotFoundError("Parent department not found")

    async def _ensure_head(self, organization_id: str, head_id: str) -> None:
        stmt = select(OrganizationMember.id).where(
            OrganizationMember.id == head_id,
            OrganizationMember.organization_id == organization_id,
        )
        if (await self.db.execute(stmt)).scalar_one_or_none() is None:
            raise DepartmentHeadNotFoundError("Department head not found in organization")

    @staticmethod
    def _validate_values(values: Dict[str, Any]) -> Dict[str, Any]:
        """Check value shapes and normalize the name."""
        for field_name in NON_NULLABLE_FIELDS:
            if field_name in values and values[field_name] is None:
                raise DepartmentValidationError(f"{field_name} may not be null")

        cleaned = dict(values)
        if "name" in cleaned:
            cleaned["name"] = cleaned["name"].strip()
            if not cleaned["name"]:
                raise DepartmentValidationError("Department name is required")
            if len(cleaned["name"]) > 100:
                raise DepartmentValidationError("Department name must be at most 100 characters")
        description = cleaned.get("description")
        if description is not None and len(description) > 500:
            raise DepartmentValidationError("Description must be at most 500 characters")
        color = cleaned.get("color")
        if color is not None and color not in DEPARTMENT_COLORS:
            raise DepartmentValidationError(f"Unknown color: {color}")
        display_order = cleaned.get("display_order")
        if display_order is not None and display_order < 0:
            raise DepartmentValidationError("display_order must be non-negative")
        return cleaned

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[None]:
        """
        Commit on success. Any error rolls back, releasing row locks;
        store errors surface as DepartmentTransactionError.
        """
        try:
            yield
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Transaction failed during {operation}: {e}", exc_info=True)
            raise DepartmentTransactionError(f"Failed to {operation}") from e
        except DepartmentServiceError:
            await self.db.rollback()
            raise

    # ==================== Create Operations ====================

    async def create_department(
        self,
        ctx: AuthContext,
        name: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
        parent_id: Optional[str] = None,
        head_id: Optional[str] = None,
        display_order: int = 0,
        is_active: bool = True,
    ) -> Department:
        """
        Create a department in the caller's organization.

        Raises:
            DepartmentForbiddenError: If the caller is not an admin.
            DepartmentValidationError: If the name is blank or a value is malformed.
            ParentDepartmentNotFoundError: If parent_id does not resolve in the organization.
            DepartmentHeadNotFoundError: If head_id is not a member of the organization.
            DepartmentTransactionError: If the store rejects the insert.
        """
        if not can_create(ctx):
            raise DepartmentForbiddenError("Only admins can create departments")

        values = self._validate_values({
            "name": name or "",
            "description": description,
            "color": color,
            "display_order": display_order,
            "is_active": is_active,
        })
        organization_id = ctx.organization_id

        async with self._transaction("create department"):
            if parent_id is not None:
                await self._ensure_parent(organization_id, parent_id)
            if head_id is not None:
                await self._ensure_head(organization_id, head_id)

            slug = await self.slugs.allocate(organization_id, values["name"])
            department = Department(
                organization_id=organization_id,
                slug=slug,
                parent_id=parent_id,
                head_id=head_id,
                **values,
            )
            self.db.add(department)

        await self.db.refresh(department)

        self.audit.emit(AuditEntry(
            action="CREATE",
            entity_type="Department",
            entity_id=department.id,
            user_id=ctx.account_id,
            metadata={
                "name": department.name,
                "slug": department.slug,
                "parent_id": department.parent_id,
                "organization_id": organization_id,
            },
        ))
        logger.info(
            f"Department created: department_id={department.id} "
            f"name={department.name!r} organization_id={organization_id}"
        )
        return department

    # ==================== Update Operations ====================

    async def update_department(
        self,
        ctx: AuthContext,
        department_id: str,
        changes: Dict[str, Any],
    ) -> Department:
        """
        Apply a partial update to a department.

        The whole change set is authorized first; a single forbidden field
        rejects the request and nothing is applied.

        Args:
            ctx: Caller's auth context.
            department_id: Department to update.
            changes: Field name to new value, only for fields present in the request.

        Returns:
            Updated Department instance.

        Raises:
            DepartmentNotFoundError: If the ID does not resolve in the organization.
            DepartmentForbiddenError: If the caller may not write one of the fields.
            DepartmentValidationError: On malformed values, unknown parent/head or a cycle.
            DepartmentTransactionError: If the store rejects the write.
        """
        organization_id = ctx.organization_id
        changed: Dict[str, Dict[str, Any]] = {}

        async with self._transaction("update department"):
            department = await self._load_for_write(organization_id, department_id)

            decision = authorize(ctx, department, changes.keys())
            if not decision.allowed:
                if decision.rejected_field is not None:
                    raise DepartmentForbiddenError(
                        f"Only admins can update {decision.rejected_field}",
                        field=decision.rejected_field,
                    )
                raise DepartmentForbiddenError()

            updates = self._validate_values(changes)

            new_parent_id = updates.get("parent_id")
            if new_parent_id is not None and new_parent_id != department.parent_id:
                await self._ensure_parent(organization_id, new_parent_id)
                if await self.hierarchy.would_create_cycle(
                    department.id, new_parent_id, organization_id, lock=True
                ):
                    raise CircularReferenceError(
                        "Cannot move department under itself or its descendants: "
                        "would create a cycle"
                    )

            if updates.get("head_id") is not None:
                await self._ensure_head(organization_id, updates["head_id"])

            if "name" in updates and updates["name"] != department.name:
                updates["slug"] = await self.slugs.allocate(
                    organization_id, updates["name"], exclude_id=department.id
                )

            for field_name, value in updates.items():
                old_value = getattr(department, field_name)
                if old_value != value:
                    changed[field_name] = {"from": old_value, "to": value}
                    setattr(department, field_name, value)

        await self.db.refresh(department)

        if changed:
            self.audit.emit(AuditEntry(
                action="UPDATE",
                entity_type="Department",
                entity_id=department.id,
                user_id=ctx.account_id,
                changes=changed,
            ))
        logger.info(
            f"Department updated: department_id={department.id} fields={sorted(changed)}"
        )
        return department

    # ==================== Delete Operations ====================

    async def delete_department(self, ctx: AuthContext, department_id: str) -> None:
        """
        Delete a department, re-linking its dependents first.

        In one transaction: children move up to the deleted department's
        parent, members and jobs are unassigned, then the row is removed.

        Raises:
            DepartmentNotFoundError: If the ID does not resolve in the organization.
            DepartmentForbiddenError: If the caller is not an admin.
            DepartmentTransactionError: If any step fails; nothing is applied.
        """
        organization_id = ctx.organization_id

        async with self._transaction("delete department"):
            department = await self._load_for_write(organization_id, department_id)
            if not can_delete(ctx):
                raise DepartmentForbiddenError("Only admins can delete departments")

            name = department.name
            await self.db.execute(
                update(Department)
                .where(
                    Department.parent_id == department.id,
                    Department.organization_id == organization_id,
                )
                .values(parent_id=department.parent_id)
            )
            await self.db.execute(
                update(OrganizationMember)
                .where(OrganizationMember.department_id == department.id)
                .values(department_id=None)
            )
            await self.db.execute(
                update(Job)
                .where(Job.department_id == department.id)
                .values(department_id=None)
            )
            await self.db.execute(
                delete(Department).where(Department.id == department.id)
            )

        self.audit.emit(AuditEntry(
            action="DELETE",
            entity_type="Department",
            entity_id=department_id,
            user_id=ctx.account_id,
            metadata={"name": name, "organization_id": organization_id},
        ))
        logger.info(
            f"Department deleted: department_id={department_id} "
            f"name={name!r} organization_id={organization_id}"
        )
