"""Request authentication and privilege guards."""
from typing import Iterable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import Role, User
from ..services.users import UserStore
from .auth import auth_service
from .exceptions import AuthenticationError, AuthorizationError, NotFoundError
from .logging import SecurityLogger
from .tokens import TokenClass

# Total order used for "at least" and "higher than" comparisons
ROLE_RANKS = {
    Role.USER.value: 1,
    Role.AUDITOR.value: 2,
    Role.ADMIN.value: 3,
    Role.ROOT.value: 4,
}

# Security scheme; a missing or non-Bearer header yields None instead of 403
security = HTTPBearer(auto_error=False)


def role_rank(role) -> int:
    """Rank of ``role``; anything not in the table ranks 0."""
    value = role.value if isinstance(role, Role) else role
    return ROLE_RANKS.get(value, 0)


def check_privilege(role, required_role) -> bool:
    rank = role_rank(role)
    return rank > 0 and rank >= role_rank(required_role)


def outranks(actor_role, target_role) -> bool:
    """True only when the actor's rank strictly exceeds the target's."""
    return role_rank(actor_role) > role_rank(target_role)


def get_user_store(db: AsyncSession = Depends(get_db)) -> UserStore:
    """User store dependency bound to the request's database session."""
    return UserStore(db)


async def protect(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    store: UserStore = Depends(get_user_store),
) -> User:
    """Resolve the acting user from a Bearer access token.

    A token issued at or before the user's last password change is rejected,
    as is a token whose user no longer exists or is inactive.
    """
    path, method = str(request.url.path), request.method
    client_ip = request.client.host if request.client else None

    if credentials is None or not credentials.credentials:
        SecurityLogger.log_unauthorized_access(path, method, client_ip, reason="missing_token")
        raise AuthenticationError("You are not logged in! Please log in to get access.")

    payload = auth_service.verify_token(credentials.credentials, TokenClass.ACCESS)

    user = await store.find_by_id(payload.user_id)
    if user is None:
        SecurityLogger.log_unauthorized_access(path, method, client_ip, reason="unknown_user")
        raise AuthenticationError("The user belonging to this token no longer exists.")

    if user.changed_password_after(payload.issued_at):
        SecurityLogger.log_unauthorized_access(path, method, client_ip, reason="password_changed")
        raise AuthenticationError("User recently changed password! Please log in again.")

    if user.blocked:
        raise AuthorizationError("Your account has been blocked")

    # Plain id only; the ORM instance expires if the request rolls back
    request.state.user_id = user.id
    return user


class RoleChecker:
    """Allow only the listed roles (exact membership)."""

    def __init__(self, allowed_roles: Iterable[str]):
        self.allowed_roles = [
            role.value if isinstance(role, Role) else role for role in allowed_roles
        ]

    def __call__(self, current_user: User = Depends(protect)) -> User:
        if current_user.role not in self.allowed_roles:
            SecurityLogger.log_privilege_denied(
                current_user.id, current_user.role, required=",".join(self.allowed_roles)
            )
            raise AuthorizationError()
        return current_user


class PrivilegeChecker:
    """Allow roles ranked at or above ``required_role``."""

    def __init__(self, required_role):
        self.required_role = required_role.value if isinstance(required_role, Role) else required_role

    def __call__(self, current_user: User = Depends(protect)) -> User:
        if not check_privilege(current_user.role, self.required_role):
            SecurityLogger.log_privilege_denied(current_user.id, current_user.role, self.required_role)
            raise AuthorizationError()
        return current_user


def restrict_to(*roles) -> RoleChecker:
    return RoleChecker(roles)


def has_privilege(required_role) -> PrivilegeChecker:
    return PrivilegeChecker(required_role)


async def has_higher_privilege(
    user_id: str,
    current_user: User = Depends(protect),
    store: UserStore = Depends(get_user_store),
) -> User:
    """Load the target user from the path and require the actor to outrank them.

    Acting on oneself always fails here, since no rank exceeds itself.
    """
    target = await store.find_by_id(user_id)
    if target is None:
        raise NotFoundError("No user found with that ID")

    if not outranks(current_user.role, target.role):
        SecurityLogger.log_privilege_denied(current_user.id, current_user.role, required=f">{target.role}")
        raise AuthorizationError()
    return target


# Common role checkers
admin_or_root_required = restrict_to(Role.ADMIN, Role.ROOT)
auditor_or_above = has_privilege(Role.AUDITOR)
root_required = has_privilege(Role.ROOT)
