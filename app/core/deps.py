from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.database import get_async_session
from app.models.user import User
from app.core.exceptions import Unauthorized
from app.core.security import decode_token, issued_before_credential_change

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


async def _resolve_user(token: str, session: AsyncSession) -> User:
    payload = decode_token(token)
    if not payload:
        raise Unauthorized("Invalid token")

    user_id: str = payload.get("sub")
    if not user_id or not str(user_id).isdigit():
        raise Unauthorized("Invalid token payload")

    result = await session.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()

    if not user:
        raise Unauthorized("Invalid token")

    if issued_before_credential_change(payload, user.credential_changed_at):
        raise Unauthorized("Token expired due to password change")

    return user


async def get_current_user(
        token: str | None = Depends(oauth2_scheme),
        session: AsyncSession = Depends(get_async_session)
) -> User:
    if not token:
        raise Unauthorized("No token provided")
    return await _resolve_user(token, session)


async def get_optional_user(
        token: str | None = Depends(oauth2_scheme),
        session: AsyncSession = Depends(get_async_session)
) -> User | None:
    """Anonymous callers resolve to None; a present but bad token is still rejected."""
    if not token:
        return None
    return await _resolve_user(token, session)
