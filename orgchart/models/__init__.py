"""
SQLAlchemy models for the department hierarchy service.
"""
from orgchart.models.organization import (
    Account,
    Job,
    Organization,
    OrganizationMember,
    OrgMemberRole,
)
from orgchart.models.department import DEPARTMENT_COLORS, Department
from orgchart.models.audit import AuditLog

__all__ = [
    # Organization
    "Organization",
    "Account",
    "OrganizationMember",
    "OrgMemberRole",
    "Job",
    # Departments
    "Department",
    "DEPARTMENT_COLORS",
    # Audit
    "AuditLog",
]
