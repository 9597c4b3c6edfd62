"""
Resolution of the authenticated actor for department endpoints.

The bearer token names an account and the organization it is acting in;
the membership row supplies the role and member ID used by the
department policy.
"""
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgchart.core.database import get_db_session
from orgchart.core.redis import TokenRevocationStore, get_revocation_store
from orgchart.core.security import AuthContext, TokenData, TokenError, decode_access_token
from orgchart.models.organization import OrganizationMember


bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str:
    if credentials is None:
        raise _unauthorized("Not authenticated")
    return credentials.credentials


async def get_token_data(
    token: Annotated[str, Depends(get_current_token)],
    revocations: Annotated[TokenRevocationStore, Depends(get_revocation_store)],
) -> TokenData:
    """
    Verify the bearer token and reject revoked ones.

    Raises:
        HTTPException: 401 if the token is invalid, expired or revoked.
    """
    try:
        token_data = decode_access_token(token)
    except TokenError as e:
        raise _unauthorized(str(e))

    if token_data.jti and await revocations.is_revoked(token_data.jti):
        raise _unauthorized("Token has been revoked")

    return token_data


async def get_auth_context(
    token_data: Annotated[TokenData, Depends(get_token_data)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> AuthContext:
    """
    Resolve the caller's membership in the token's organization.

    Raises:
        HTTPException: 401 if the account is not a member of the organization.
    """
    stmt = select(OrganizationMember).where(
        OrganizationMember.account_id == token_data.account_id,
        OrganizationMember.organization_id == token_data.organization_id,
    )
    membership = (await db.execute(stmt)).scalar_one_or_none()
    if membership is None:
        raise _unauthorized("No membership in organization")

    return AuthContext(
        organization_id=membership.organization_id,
        role=membership.role,
        member_id=membership.id,
        account_id=membership.account_id,
    )


CurrentContext = Annotated[AuthContext, Depends(get_auth_context)]
