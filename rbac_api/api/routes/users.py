"""User self-service and user management routes."""
import enum

from fastapi import APIRouter, Depends, Query, Response, status

from ...core.auth import auth_service
from ...core.exceptions import AuthorizationError, NotFoundError
from ...core.logging import BusinessLogger, SecurityLogger
from ...core.security import (
    admin_or_root_required,
    auditor_or_above,
    get_user_store,
    has_higher_privilege,
    protect,
    role_rank,
    root_required,
)
from ...models.user import User
from ...schemas.common import PaginationParams, SuccessResponse
from ...schemas.user import (
    UpdateEmailRequest,
    UpdateMeRequest,
    UpdateUserRequest,
    UserDetailResponse,
    UserEnvelope,
    UserListResponse,
    UserResponse,
)
from ...services.email import EmailService, get_email_service
from ...services.users import UserStore
from .auth import get_base_url

router = APIRouter(prefix="/users", tags=["Users"])


def _detail(user: User) -> UserDetailResponse:
    return UserDetailResponse(data=UserEnvelope(user=UserResponse.model_validate(user)))


def _apply(user: User, changes: dict) -> None:
    for field, value in changes.items():
        setattr(user, field, value.value if isinstance(value, enum.Enum) else value)


async def _deactivate(store: UserStore, user: User, actor: User) -> None:
    user.active = False
    user.revoke_session()
    await store.save(user, validate=False)
    BusinessLogger.log_user_deactivated(user.id, actor.id)


@router.post("/verify-email", response_model=SuccessResponse)
async def send_verify_email(
    current_user: User = Depends(protect),
    store: UserStore = Depends(get_user_store),
    mailer: EmailService = Depends(get_email_service),
    base_url: str = Depends(get_base_url),
):
    """Send a new verification link; earlier links stop working."""
    return await auth_service.send_verify_email(store, mailer, current_user, base_url)


@router.get("/verify-email/{token}", response_model=SuccessResponse)
async def verify_email(
    token: str,
    store: UserStore = Depends(get_user_store),
):
    return await auth_service.verify_email(store, token)


@router.patch("/update-email", response_model=SuccessResponse)
async def update_email(
    email_request: UpdateEmailRequest,
    current_user: User = Depends(protect),
    store: UserStore = Depends(get_user_store),
    mailer: EmailService = Depends(get_email_service),
    base_url: str = Depends(get_base_url),
):
    return await auth_service.update_email(store, mailer, current_user, email_request.email, base_url)


@router.get("/me", response_model=UserDetailResponse)
async def get_me(current_user: User = Depends(protect)):
    """Get current user information."""
    return _detail(current_user)


@router.patch("/me", response_model=UserDetailResponse)
async def update_me(
    update_request: UpdateMeRequest,
    current_user: User = Depends(protect),
    store: UserStore = Depends(get_user_store),
):
    """Update profile fields. Role, email, password and flags are not accepted here."""
    changes = update_request.model_dump(exclude_unset=True)
    _apply(current_user, changes)

    await store.save(current_user)
    BusinessLogger.log_user_updated(current_user.id, current_user.id, sorted(changes))
    return _detail(current_user)


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_me(
    current_user: User = Depends(protect),
    store: UserStore = Depends(get_user_store),
):
    await _deactivate(store, current_user, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Page size"),
    current_user: User = Depends(admin_or_root_required),
    store: UserStore = Depends(get_user_store),
):
    """List active users, oldest first."""
    pagination = PaginationParams(page=page, limit=limit)
    users = await store.list_active(offset=pagination.offset, limit=pagination.limit)
    total = await store.count_active()

    return UserListResponse(
        results=len(users),
        total=total,
        page=pagination.page,
        data=[UserResponse.model_validate(user) for user in users],
    )


@router.get("/{user_id}", response_model=UserDetailResponse)
async def get_user(
    user_id: str,
    current_user: User = Depends(auditor_or_above),
    store: UserStore = Depends(get_user_store),
):
    user = await store.find_by_id(user_id)
    if user is None:
        raise NotFoundError("No user found with that ID")
    return _detail(user)


@router.patch("/{user_id}", response_model=UserDetailResponse)
async def update_user(
    update_request: UpdateUserRequest,
    target: User = Depends(has_higher_privilege),
    current_user: User = Depends(protect),
    store: UserStore = Depends(get_user_store),
):
    """Change another user's role or status. Only a strictly higher rank may do so."""
    if update_request.role is not None and role_rank(update_request.role) >= role_rank(current_user.role):
        SecurityLogger.log_privilege_denied(
            current_user.id, current_user.role, required=f">{update_request.role.value}"
        )
        raise AuthorizationError("You cannot grant a role equal to or above your own")

    changes = update_request.model_dump(exclude_unset=True)
    _apply(target, changes)

    if target.blocked or not target.active:
        target.revoke_session()

    await store.save(target)
    BusinessLogger.log_user_updated(target.id, current_user.id, sorted(changes))
    return _detail(target)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(root_required)],
)
async def delete_user(
    target: User = Depends(has_higher_privilege),
    current_user: User = Depends(protect),
    store: UserStore = Depends(get_user_store),
):
    await _deactivate(store, target, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
