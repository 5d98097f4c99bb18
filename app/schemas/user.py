from datetime import datetime

from pydantic import Field

from app.schemas.base import CamelModel


class UserCreate(CamelModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6)
    email: str | None = None
    firstname: str | None = None
    lastname: str | None = None


class UserRead(CamelModel):
    id: int
    username: str
    email: str | None = None
    firstname: str | None = None
    lastname: str | None = None


class UserProfile(UserRead):
    created_at: datetime


class AuthResponse(CamelModel):
    message: str
    token: str
    access_token: str
    token_type: str = "bearer"
    user: UserRead


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(min_length=6)


class UpdateUserRequest(CamelModel):
    email: str | None = None
    firstname: str | None = None
    lastname: str | None = None


class UserUpdated(CamelModel):
    message: str
    user: UserRead
