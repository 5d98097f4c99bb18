from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core.deps import get_current_user
from app.core.deps_file import get_recorder
from app.core.exceptions import Conflict, ValidationFailure
from app.core.security import hash_password, verify_password
from app.database import get_async_session
from app.models.log import LogAction
from app.models.user import User
from app.schemas.base import MessageResponse
from app.schemas.user import ChangePasswordRequest, UpdateUserRequest, UserRead, UserUpdated
from app.services.activity import ActivityRecorder

router = APIRouter(
    prefix="/user",
    tags=["User"]
)


@router.put("/password", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
    recorder: ActivityRecorder = Depends(get_recorder),
):
    if not verify_password(payload.current_password, user.hashed_password):
        raise ValidationFailure("Current password is incorrect")

    user.hashed_password = hash_password(payload.new_password)
    # revokes every token issued before now
    user.credential_changed_at = datetime.now(timezone.utc)
    await session.commit()

    recorder.record(user.id, LogAction.CHANGE_PASSWORD)
    return MessageResponse(message="Password updated successfully")


@router.put("/profile", response_model=UserUpdated)
async def update_profile(
    payload: UpdateUserRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
    recorder: ActivityRecorder = Depends(get_recorder),
):
    if payload.email:
        result = await session.execute(
            select(User).where(User.email == payload.email, User.id != user.id)
        )
        if result.scalar_one_or_none():
            raise Conflict("Email already exists")
        user.email = payload.email

    if payload.firstname:
        user.firstname = payload.firstname
    if payload.lastname:
        user.lastname = payload.lastname

    await session.commit()
    await session.refresh(user)

    recorder.record(user.id, LogAction.UPDATE_USER)
    return UserUpdated(message="User updated successfully", user=UserRead.model_validate(user))
