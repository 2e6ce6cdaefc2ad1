from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from doctracker.api.deps import get_current_user, get_db, require_roles
from doctracker.models.user import User, UserRole
from doctracker.schemas.user import UserRead, UserRoleUpdate, UserSelfUpdate
from doctracker.services.user import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=List[UserRead])
def list_users(
    session: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[UserRead]:
    return list(UserService(session).list_users())


@router.get("/me", response_model=UserRead)
def get_me(current_user: User = Depends(get_current_user)) -> UserRead:
    return current_user


@router.patch("/me", response_model=UserRead)
def update_me(
    payload: UserSelfUpdate,
    session: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UserRead:
    try:
        return UserService(session).update_self(current_user, payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.patch("/{user_id}/role", response_model=UserRead)
def set_user_role(
    user_id: UUID,
    payload: UserRoleUpdate,
    session: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
) -> UserRead:
    service = UserService(session)
    try:
        return service.set_role(current_user, user_id, payload.role)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
