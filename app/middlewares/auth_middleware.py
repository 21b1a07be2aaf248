import hmac
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.models import UserRole
from app.db.session import get_sync_session
from app.providers.user_provider import UserProvider
from app.utils.errors import AuthenticationError, AuthorizationError
from app.utils.logging import get_logger

logger = get_logger()

USER_ID_HEADER = "X-User-Id"


class AuthState:
    """Authenticated user, stored in request.state.auth"""

    def __init__(self, user_id: str, email: str, name: str, role: UserRole):
        self.user_id = user_id
        self.email = email
        self.name = name
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


async def get_current_user(
    request: Request, db: Session = Depends(get_sync_session)
) -> AuthState:
    """
    Dependency to resolve the current active user from the identity header.

    The header is trusted as-is. It must be set by the authenticating gateway,
    which strips any client-supplied X-User-Id at the edge; this API must not
    be reachable without that gateway in front of it.
    """
    user_id = request.headers.get(USER_ID_HEADER)
    if not user_id:
        raise AuthenticationError("Not authenticated", "NOT_AUTHENTICATED")

    user = await UserProvider(db).get(user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("Unknown or inactive user", "INVALID_USER")

    auth_state = AuthState(
        user_id=user.id, email=user.email, name=user.name, role=user.role
    )
    request.state.auth = auth_state
    return auth_state


def require_role(*allowed_roles: UserRole):
    """Create dependency that requires one of the given roles"""

    def check_role(current_user: AuthState = Depends(get_current_user)) -> AuthState:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                "Insufficient permissions", "INSUFFICIENT_PERMISSIONS"
            )
        return current_user

    return check_role


require_admin = require_role(UserRole.ADMIN)


def verify_cron_secret(request: Request) -> None:
    """
    Dependency guarding the scheduler trigger.

    The caller must send ``Authorization: Bearer <CRON_SECRET>``.
    """
    expected: Optional[str] = settings.CRON_SECRET
    if not expected:
        logger.error("CRON_SECRET is not configured; refusing scheduler trigger")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Cron secret is not configured",
        )

    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(
        token.strip().encode(), expected.encode()
    ):
        client = request.client.host if request.client else "unknown"
        logger.warning(f"Unauthorized scheduler trigger from {client}")
        raise AuthenticationError("Invalid cron secret", "INVALID_CRON_SECRET")
