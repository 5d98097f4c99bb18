from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from app.core.deps import get_current_user
from app.core.deps_file import get_recorder
from app.core.exceptions import Conflict, ValidationFailure
from app.core.security import hash_password, verify_password, create_access_token
from app.database import get_async_session
from app.models.log import LogAction
from app.models.user import User
from app.schemas.user import AuthResponse, UserCreate, UserProfile, UserRead
from app.services.activity import ActivityRecorder

router = APIRouter(
    prefix="/auth",
    tags=["Auth"]
)


def _auth_response(message: str, user: User) -> AuthResponse:
    token = create_access_token(data={"sub": str(user.id)})
    return AuthResponse(
        message=message,
        token=token,
        access_token=token,
        user=UserRead.model_validate(user),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserCreate,
    session: AsyncSession = Depends(get_async_session),
    recorder: ActivityRecorder = Depends(get_recorder),
):
    result = await session.execute(select(User).where(User.username == user_data.username))
    if result.scalar_one_or_none():
        raise Conflict("Username already exists")

    if user_data.email:
        result = await session.execute(select(User).where(User.email == user_data.email))
        if result.scalar_one_or_none():
            raise Conflict("Email already exists")

    new_user = User(
        username=user_data.username,
        email=user_data.email or None,
        firstname=user_data.firstname,
        lastname=user_data.lastname,
        hashed_password=hash_password(user_data.password),
    )

    session.add(new_user)
    await session.commit()
    await session.refresh(new_user)

    recorder.record(new_user.id, LogAction.REGISTER)
    return _auth_response("User created successfully", new_user)


@router.post("/login", response_model=AuthResponse)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: AsyncSession = Depends(get_async_session),
    recorder: ActivityRecorder = Depends(get_recorder),
):
    # username field carries either the username or the email
    login_name = form_data.username
    if not login_name or not form_data.password:
        raise ValidationFailure("Missing required fields")

    result = await session.execute(
        select(User).where(or_(User.username == login_name, User.email == login_name))
    )
    user = result.scalars().first()

    if not user:
        raise ValidationFailure("User not found")
    if not verify_password(form_data.password, user.hashed_password):
        raise ValidationFailure("Invalid password")

    recorder.record(user.id, LogAction.LOGIN)
    return _auth_response("Logged in successfully", user)


@router.get("/me", response_model=UserProfile)
async def read_me(current_user: User = Depends(get_current_user)):
    return current_user
