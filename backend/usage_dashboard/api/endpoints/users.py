"""User management endpoints (accounts mode only)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from usage_dashboard.api.deps import Context, Events, enforce_csrf, require_user_permission
from usage_dashboard.core.permissions import Permission
from usage_dashboard.schemas.common import OkResponse
from usage_dashboard.schemas.user import UserCreate, UserListResponse, UserResponse, UserUpdate
from usage_dashboard.services.auth import SessionIdentity
from usage_dashboard.services.users import UserService

router = APIRouter()

Viewer = Annotated[SessionIdentity, Depends(require_user_permission(Permission.USERS_VIEW))]
Manager = Annotated[SessionIdentity, Depends(require_user_permission(Permission.USERS_MANAGE))]


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


Users = Annotated[UserService, Depends(get_user_service)]


@router.get("", response_model=UserListResponse)
async def list_users(identity: Viewer, users: Users):
    """List all user accounts."""
    return UserListResponse(users=[UserResponse.model_validate(u) for u in await users.list_users()])


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, identity: Viewer, users: Users):
    return UserResponse.model_validate(await users.get_user(user_id))


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_csrf)],
)
async def create_user(body: UserCreate, identity: Manager, users: Users, context: Context, events: Events):
    """Create a user. Duplicate emails are a 409."""
    user = await users.create_user(
        email=str(body.email),
        password=body.password,
        name=body.name,
        role=body.role.value,
    )
    events.log_user_created(
        admin_user_id=str(identity.user.id),
        created_user_id=str(user.id),
        email=user.email,
        role=user.role,
        ip_address=context.client_ip,
    )
    return UserResponse.model_validate(user)


@router.put("/{user_id}", response_model=UserResponse, dependencies=[Depends(enforce_csrf)])
async def update_user(
    user_id: int,
    body: UserUpdate,
    identity: Manager,
    users: Users,
    context: Context,
    events: Events,
):
    """Update email, name, role, activation or password.

    Changing the password or deactivating the user ends all of their sessions.
    """
    result = await users.update_user(
        user_id,
        email=str(body.email) if body.email else None,
        name=body.name,
        role=body.role.value if body.role else None,
        is_active=body.is_active,
        password=body.password,
    )
    events.log_user_modified(
        admin_user_id=str(identity.user.id),
        target_user_id=str(user_id),
        changed_fields=result.changed_fields,
        ip_address=context.client_ip,
    )
    return UserResponse.model_validate(result.user)


@router.delete("/{user_id}", response_model=OkResponse, dependencies=[Depends(enforce_csrf)])
async def delete_user(user_id: int, identity: Manager, users: Users, context: Context, events: Events):
    """Hard-delete a user and their sessions. Deleting yourself is refused."""
    await users.delete_user(user_id, acting_user_id=identity.user.id)
    events.log_user_deleted(
        admin_user_id=str(identity.user.id),
        target_user_id=str(user_id),
        ip_address=context.client_ip,
    )
    return OkResponse()
