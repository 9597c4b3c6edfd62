from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgchart.core.database import Base
from orgchart.models.organization import generate_id

if TYPE_CHECKING:
    from orgchart.models.organization import OrganizationMember


DEPARTMENT_COLORS = ("green", "blue", "purple", "orange", "red", "yellow", "neutral")


class Department(Base):
    """
    Department node in an organization-scoped forest.

    Parent and child links are plain ids resolved by lookup within the
    owning organization; there is no parent/children relationship.
    """
    __tablename__ = "departments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    organization_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("departments.id"), nullable=True
    )
    head_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("organization_members.id", ondelete="SET NULL", use_alter=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    head: Mapped[Optional["OrganizationMember"]] = relationship(
        "OrganizationMember", foreign_keys=[head_id], lazy="raise"
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "slug", name="uq_departments_organization_slug"),
        CheckConstraint("display_order >= 0", name="display_order_non_negative"),
        Index("ix_departments_organization_id", "organization_id"),
        Index("ix_departments_parent_id", "parent_id"),
    )
