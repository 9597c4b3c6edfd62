"""
Access tokens and the authenticated actor.

Tokens are minted by the identity provider in front of this service with
the shared secret; ``sub`` is the account and ``org`` the organization the
caller is acting in.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from orgchart.core.config import get_settings


ACCESS_TOKEN_TYPE = "access"
REQUIRED_CLAIMS = ("sub", "org", "exp", "iat")


@dataclass
class TokenData:
    """Claims of a verified access token."""
    account_id: str
    organization_id: str
    expires_at: datetime
    jti: Optional[str] = None


@dataclass(frozen=True)
class AuthContext:
    """The actor behind the current request, scoped to one organization."""
    organization_id: str
    role: str
    member_id: str
    account_id: str


class TokenError(Exception):
    """Base exception for token-related errors."""
    pass


class TokenExpiredError(TokenError):
    pass


class TokenInvalidError(TokenError):
    pass


def create_access_token(
    account_id: str,
    organization_id: str,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Mint an access token the way the identity provider does.

    Used by the dev seed script and the test-suite.
    """
    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    claims: Dict[str, Any] = {
        "sub": account_id,
        "org": organization_id,
        "type": ACCESS_TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "jti": uuid.uuid4().hex,
    }
    claims.update(extra_claims or {})
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> TokenData:
    """
    Verify signature, expiry, required claims and token type.

    Raises:
        TokenExpiredError: If the token has expired.
        TokenInvalidError: If the token is malformed, tampered with or not an access token.
    """
    settings = get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": list(REQUIRED_CLAIMS)},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token: {e}")

    token_type = claims.get("type", ACCESS_TOKEN_TYPE)
    if token_type != ACCESS_TOKEN_TYPE:
        raise TokenInvalidError(f"Expected access token, got {token_type}")

    return TokenData(
        account_id=str(claims["sub"]),
        organization_id=str(claims["org"]),
        expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        jti=claims.get("jti"),
    )
