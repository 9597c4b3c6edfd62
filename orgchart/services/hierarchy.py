"""
Ancestor walks over the department forest.

Provides:
- Cycle detection for a proposed reparent
- Ancestor chain lookup
- Forest assembly from a flat department list
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgchart.core.config import get_settings
from orgchart.models.department import Department

logger = logging.getLogger(__name__)


@dataclass
class DepartmentCounts:
    """Aggregate counts of a department's dependents."""
    members: int = 0
    jobs: int = 0
    children: int = 0


@dataclass
class DepartmentNode:
    """Department node for tree representation."""
    id: str
    name: str
    slug: str
    color: Optional[str]
    parent_id: Optional[str]
    head_id: Optional[str]
    display_order: int
    is_active: bool
    depth: int
    member_count: int
    job_count: int
    children: List["DepartmentNode"] = field(default_factory=list)


class HierarchyValidator:
    """
    Walks parent links one row at a time, always scoped to one organization.

    The walk is bounded by ``max_depth`` hops; exceeding it counts as a cycle.
    """

    def __init__(self, db: AsyncSession, max_depth: Optional[int] = None):
        self.db = db
        self.max_depth = (
            max_depth if max_depth is not None
            else get_settings().DEPARTMENT_MAX_ANCESTOR_DEPTH
        )

    async def _get_parent_id(
        self, department_id: str, organization_id: str, lock: bool = False
    ) -> Optional[str]:
        """Parent of a department, or None for roots and unknown ids."""
        stmt = select(Department.parent_id).where(
            Department.id == department_id,
            Department.organization_id == organization_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def would_create_cycle(
        self,
        department_id: str,
        proposed_parent_id: str,
        organization_id: str,
        lock: bool = False,
    ) -> bool:
        """
        Check if moving ``department_id`` under ``proposed_parent_id`` would create a cycle.

        Walks up from the proposed parent until it reaches the department itself
        (cycle), a node seen earlier in this walk (existing cycle), the depth
        bound (treated as a cycle) or a root (no cycle).

        Args:
            department_id: Department being reparented.
            proposed_parent_id: Candidate new parent.
            organization_id: Organization both must belong to.
            lock: Take row locks on every ancestor read, for use inside the
                transaction that commits the reparent.

        Returns:
            True if the reparent must be refused.
        """
        current_id: Optional[str] = proposed_parent_id
        visited: Set[str] = set()

        while current_id is not None:
            if current_id == department_id:
                return True
            if current_id in visited:
                return True
            visited.add(current_id)

            if len(visited) > self.max_depth:
                logger.warning(
                    "Cycle check hit depth limit, possible existing cycle: "
                    f"department_id={department_id} proposed_parent_id={proposed_parent_id} "
                    f"organization_id={organization_id} depth={len(visited)}"
                )
                return True

            current_id = await self._get_parent_id(current_id, organization_id, lock=lock)

        return False

    async def get_ancestors(
        self, department_id: str, organization_id: str
    ) -> List[Department]:
        """
        Ancestor chain of a department, nearest parent first.

        Stops at a root, at an id outside the organization, or after
        ``max_depth`` hops.
        """
        ancestors: List[Department] = []
        seen: Set[str] = {department_id}
        current_id = await self._get_parent_id(department_id, organization_id)

        while current_id is not None and current_id not in seen:
            if len(ancestors) >= self.max_depth:
                logger.warning(
                    f"Ancestor chain truncated at depth {self.max_depth}: "
                    f"department_id={department_id} organization_id={organization_id}"
                )
                break
            stmt = select(Department).where(
                Department.id == current_id,
                Department.organization_id == organization_id,
            )
            result = await self.db.execute(stmt)
            ancestor = result.scalar_one_or_none()
            if ancestor is None:
                break
            ancestors.append(ancestor)
            seen.add(ancestor.id)
            current_id = ancestor.parent_id

        return ancestors


def build_department_tree(
    departments: Iterable[Department],
    counts: Optional[Dict[str, DepartmentCounts]] = None,
) -> List[DepartmentNode]:
    """
    Assemble a forest from a flat list of one organization's departments.

    Nodes whose parent is not in the list become roots. Siblings are ordered
    by ``(display_order, name)``. Nodes caught in a parent cycle are not
    reachable from any root and are left out.
    """
    counts = counts or {}
    ordered = sorted(departments, key=lambda d: (d.display_order, d.name))
    known_ids = {dept.id for dept in ordered}

    children_map: Dict[Optional[str], List[Department]] = {}
    for dept in ordered:
        parent_key = dept.parent_id if dept.parent_id in known_ids else None
        children_map.setdefault(parent_key, []).append(dept)

    def build(dept: Department, depth: int) -> DepartmentNode:
        dept_counts = counts.get(dept.id, DepartmentCounts())
        node = DepartmentNode(
            id=dept.id,
            name=dept.name,
            slug=dept.slug,
            color=dept.color,
            parent_id=dept.parent_id,
            head_id=dept.head_id,
            display_order=dept.display_order,
            is_active=dept.is_active,
            depth=depth,
            member_count=dept_counts.members,
            job_count=dept_counts.jobs,
        )
        for child in children_map.get(dept.id, []):
            node.children.append(build(child, depth + 1))
        return node

    return [build(root, 0) for root in children_map.get(None, [])]
