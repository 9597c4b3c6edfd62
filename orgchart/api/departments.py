"""
Department management API endpoints.

Endpoints:
- GET /api/v1/departments - List departments with counts
- GET /api/v1/departments/tree - Get department tree
- POST /api/v1/departments - Create department (admin)
- GET /api/v1/departments/{id} - Get department detail
- PATCH /api/v1/departments/{id} - Update department (admin, or head for name/description/color)
- DELETE /api/v1/departments/{id} - Delete department, re-linking dependents (admin)
"""
from typing import Annotated, Any, NoReturn

from fastapi import APIRouter, Body, Depends, HTTPException, Response, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from orgchart.core.database import get_db_session
from orgchart.core.permissions import CurrentContext
from orgchart.schemas.department import (
    DepartmentAncestorResponse,
    DepartmentChildResponse,
    DepartmentCountsResponse,
    DepartmentCreate,
    DepartmentDetailResponse,
    DepartmentHeadResponse,
    DepartmentListItem,
    DepartmentListResponse,
    DepartmentMemberResponse,
    DepartmentResponse,
    DepartmentTreeNode,
    DepartmentTreeResponse,
    DepartmentUpdate,
)
from orgchart.services.audit import AuditLogger, get_audit_logger
from orgchart.services.department import (
    CircularReferenceError,
    DepartmentForbiddenError,
    DepartmentHeadNotFoundError,
    DepartmentNotFoundError,
    DepartmentService,
    DepartmentServiceError,
    DepartmentTransactionError,
    DepartmentValidationError,
    ParentDepartmentNotFoundError,
)

router = APIRouter(prefix="/departments", tags=["Departments"])


async def get_department_service(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    audit: Annotated[AuditLogger, Depends(get_audit_logger)],
) -> DepartmentService:
    """Dependency to get DepartmentService instance."""
    return DepartmentService(db, audit=audit)


DepartmentServiceDep = Annotated[DepartmentService, Depends(get_department_service)]


def _raise_http_error(error: DepartmentServiceError) -> NoReturn:
    """Translate a service error into the matching HTTP error."""
    if isinstance(error, DepartmentNotFoundError):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"message": "Department not found", "code": "NOT_FOUND"},
        )
    if isinstance(error, DepartmentForbiddenError):
        detail = {"message": str(error), "code": "FORBIDDEN"}
        if error.field is not None:
            detail["field"] = error.field
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
    if isinstance(error, DepartmentValidationError):
        if isinstance(error, CircularReferenceError):
            code = "CIRCULAR_REFERENCE"
        elif isinstance(error, ParentDepartmentNotFoundError):
            code = "PARENT_NOT_FOUND"
        elif isinstance(error, DepartmentHeadNotFoundError):
            code = "HEAD_NOT_FOUND"
        else:
            code = "VALIDATION_FAILED"
        raise HTTPException(
            status_code=422,
            detail={"message": str(error), "code": code},
        )
    if isinstance(error, DepartmentTransactionError):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": str(error), "code": "TRANSACTION_FAILED"},
        )
    raise error


def _counts_to_response(counts) -> DepartmentCountsResponse:
    return DepartmentCountsResponse(
        members=counts.members, jobs=counts.jobs, children=counts.children
    )


def _tree_size(nodes) -> int:
    return sum(1 + _tree_size(node.children) for node in nodes)


@router.get("", response_model=DepartmentListResponse)
async def list_departments(
    ctx: CurrentContext,
    service: DepartmentServiceDep,
) -> DepartmentListResponse:
    """List every department of the caller's organization with counts."""
    summaries = await service.list_departments(ctx.organization_id)
    return DepartmentListResponse(
        departments=[
            DepartmentListItem(
                **DepartmentResponse.model_validate(summary.department).model_dump(),
                counts=_counts_to_response(summary.counts),
            )
            for summary in summaries
        ]
    )


@router.get("/tree", response_model=DepartmentTreeResponse)
async def get_department_tree(
    ctx: CurrentContext,
    service: DepartmentServiceDep,
) -> DepartmentTreeResponse:
    """
    Get the department forest of the caller's organization.

    Each node includes depth, member and job counts.
    """
    tree = await service.get_department_tree(ctx.organization_id)
    return DepartmentTreeResponse(
        tree=[DepartmentTreeNode.model_validate(node) for node in tree],
        total_departments=_tree_size(tree),
    )


@router.post("", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
async def create_department(
    request: DepartmentCreate,
    ctx: CurrentContext,
    service: DepartmentServiceDep,
) -> DepartmentResponse:
    """
    Create a department. Admin only.

    - **name**: Department name (slug is derived from it)
    - **parent_id**: Parent department ID (None for root)
    - **head_id**: Organization member leading the department
    """
    try:
        department = await service.create_department(
            ctx,
            name=request.name,
            description=request.description,
            color=request.color,
            parent_id=request.parent_id,
            head_id=request.head_id,
            display_order=request.display_order,
            is_active=request.is_active,
        )
    except DepartmentServiceError as e:
        _raise_http_error(e)
    return DepartmentResponse.model_validate(department)


@router.get("/{department_id}", response_model=DepartmentDetailResponse)
async def get_department(
    department_id: str,
    ctx: CurrentContext,
    service: DepartmentServiceDep,
) -> DepartmentDetailResponse:
    """
    Get a department with its head, active children, up to 50 members,
    aggregate counts and ancestor chain.
    """
    try:
        detail = await service.get_department_detail(ctx.organization_id, department_id)
    except DepartmentServiceError as e:
        _raise_http_error(e)

    department = detail.department
    return DepartmentDetailResponse(
        **DepartmentResponse.model_validate(department).model_dump(),
        head=DepartmentHeadResponse(**vars(detail.head)) if detail.head else None,
        children=[DepartmentChildResponse(**vars(child)) for child in detail.children],
        members=[DepartmentMemberResponse(**vars(member)) for member in detail.members],
        ancestors=[
            DepartmentAncestorResponse(id=a.id, name=a.name, slug=a.slug)
            for a in detail.ancestors
        ],
        counts=_counts_to_response(detail.counts),
        created_at=department.created_at,
        updated_at=department.updated_at,
    )


@router.patch("/{department_id}", response_model=DepartmentResponse)
async def update_department(
    department_id: str,
    payload: Annotated[Any, Body()],
    ctx: CurrentContext,
    service: DepartmentServiceDep,
) -> DepartmentResponse:
    """
    Update a department.

    Admins may change every field. The department head may change only
    name, description and color; any other field rejects the whole request.
    Moving a department under itself or one of its descendants is refused.

    The department and the caller's standing are checked before the body
    is validated, so unknown IDs and outsiders get 404/403, not 422.
    """
    try:
        await service.check_update_access(ctx, department_id)
    except DepartmentServiceError as e:
        _raise_http_error(e)

    try:
        request = DepartmentUpdate.model_validate(payload)
    except ValidationError as e:
        errors = [
            {**error, "loc": ("body", *error["loc"])}
            for error in e.errors(include_url=False)
        ]
        raise RequestValidationError(errors, body=payload)

    try:
        department = await service.update_department(ctx, department_id, request.changes())
    except DepartmentServiceError as e:
        _raise_http_error(e)
    return DepartmentResponse.model_validate(department)


@router.delete("/{department_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_department(
    department_id: str,
    ctx: CurrentContext,
    service: DepartmentServiceDep,
) -> Response:
    """
    Delete a department. Admin only.

    Child departments move up to the deleted department's parent; members
    and jobs assigned to it are unassigned.
    """
    try:
        await service.delete_department(ctx, department_id)
    except DepartmentServiceError as e:
        _raise_http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
