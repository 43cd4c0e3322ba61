"""Auth gate for FastAPI endpoints.

Provides:
- `get_identity` dependency: Bearer token -> `Identity`, or 401
- `Policy` predicates deciding whether an identity may use a route
- `require_admin` dependency enforcing the app's admin policy (403 on denial)
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import Settings
from security import Identity, TokenError, TokenService

bearer = HTTPBearer(auto_error=False)


def get_identity(
    request: Request, creds: HTTPAuthorizationCredentials = Depends(bearer)
) -> Identity:
    """Extract and verify the caller's token.

    Raises:
        HTTPException: 401 if the header is missing or the token is invalid/expired.
    """
    if not creds or not creds.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token, authorization denied",
        )
    tokens: TokenService = request.app.state.tokens
    try:
        return tokens.verify(creds.credentials)
    except TokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is not valid",
        )


class Policy:
    """Authorization predicate over an authenticated identity."""

    def allows(self, identity: Identity) -> bool:
        raise NotImplementedError


class Authenticated(Policy):
    """Any caller holding a valid token."""

    def allows(self, identity: Identity) -> bool:
        return True


class HasRole(Policy):
    def __init__(self, role: str) -> None:
        self.role = role

    def allows(self, identity: Identity) -> bool:
        return self.role in identity.roles


def admin_policy(settings: Settings) -> Policy:
    """Policy guarding /api/admin routes for the given settings."""
    if settings.ENFORCE_ADMIN_ROLE:
        return HasRole("admin")
    return Authenticated()


def require_admin(request: Request, identity: Identity = Depends(get_identity)) -> Identity:
    policy: Policy = request.app.state.admin_policy
    if not policy.allows(identity):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient role",
        )
    return identity
