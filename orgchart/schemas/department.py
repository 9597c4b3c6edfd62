"""
Department schemas for request/response validation.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


DepartmentColor = Literal["green", "blue", "purple", "orange", "red", "yellow", "neutral"]


# ==================== Request Schemas ====================

class DepartmentCreate(BaseModel):
    """Schema for creating a new department."""
    name: str = Field(..., min_length=1, max_length=100, description="Department name")
    description: Optional[str] = Field(None, max_length=500, description="Department description")
    color: Optional[DepartmentColor] = Field(None, description="Display color tag")
    parent_id: Optional[str] = Field(None, description="Parent department ID (None for root)")
    head_id: Optional[str] = Field(None, description="Organization member leading the department")
    display_order: int = Field(default=0, ge=0, description="Sort order among siblings")
    is_active: bool = Field(default=True, description="Soft-disable flag")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Department name is required")
        return value.strip()


class DepartmentUpdate(BaseModel):
    """
    Schema for a partial department update.
    Only fields present in the request body are applied; explicit null
    clears description, color, head_id and parent_id.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100, description="New department name")
    description: Optional[str] = Field(None, max_length=500, description="New description")
    color: Optional[DepartmentColor] = Field(None, description="New color tag")
    head_id: Optional[str] = Field(None, description="New department head member ID")
    parent_id: Optional[str] = Field(None, description="New parent department ID (None for root)")
    display_order: Optional[int] = Field(None, ge=0, description="New sort order")
    is_active: Optional[bool] = Field(None, description="New active flag")

    @field_validator("name", "display_order", "is_active")
    @classmethod
    def not_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} may not be null")
        return value

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Department name is required")
        return value.strip()

    def changes(self) -> dict:
        """Fields the client actually sent."""
        return self.model_dump(exclude_unset=True)


# ==================== Response Schemas ====================

class DepartmentResponse(BaseModel):
    """Public fields of a department."""
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    color: Optional[str] = None
    display_order: int
    is_active: bool
    parent_id: Optional[str] = None
    head_id: Optional[str] = None

    class Config:
        from_attributes = True


class DepartmentCountsResponse(BaseModel):
    members: int
    jobs: int
    children: int


class DepartmentListItem(DepartmentResponse):
    """Department with aggregate counts."""
    counts: DepartmentCountsResponse


class DepartmentListResponse(BaseModel):
    departments: List[DepartmentListItem]


class DepartmentHeadResponse(BaseModel):
    id: str
    title: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None


class DepartmentMemberResponse(BaseModel):
    id: str
    title: Optional[str] = None
    role: str
    name: Optional[str] = None
    email: str
    avatar: Optional[str] = None


class DepartmentChildResponse(BaseModel):
    id: str
    name: str
    slug: str
    color: Optional[str] = None
    member_count: int
    job_count: int


class DepartmentAncestorResponse(BaseModel):
    id: str
    name: str
    slug: str


class DepartmentDetailResponse(DepartmentResponse):
    """Department with head, active children, member preview and counts."""
    head: Optional[DepartmentHeadResponse] = None
    children: List[DepartmentChildResponse] = []
    members: List[DepartmentMemberResponse] = []
    ancestors: List[DepartmentAncestorResponse] = []
    counts: DepartmentCountsResponse
    created_at: datetime
    updated_at: datetime


class DepartmentTreeNode(BaseModel):
    """Department tree node with nested children."""
    id: str
    name: str
    slug: str
    color: Optional[str] = None
    parent_id: Optional[str] = None
    head_id: Optional[str] = None
    display_order: int
    is_active: bool
    depth: int
    member_count: int
    job_count: int
    children: List["DepartmentTreeNode"] = []

    class Config:
        from_attributes = True


# Enable self-referencing model
DepartmentTreeNode.model_rebuild()


class DepartmentTreeResponse(BaseModel):
    """Response containing the department tree."""
    tree: List[DepartmentTreeNode]
    total_departments: int
