from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.crud.files_crud import FileRepository
from app.database import get_async_session
from app.services.activity import ActivityRecorder
from app.services.file_access import FileAccessService
from app.storage.s3 import S3Storage


@lru_cache
def get_storage() -> S3Storage:
    return S3Storage()


@lru_cache
def get_recorder() -> ActivityRecorder:
    return ActivityRecorder()


async def get_file_service(
        session: AsyncSession = Depends(get_async_session),
        storage: S3Storage = Depends(get_storage),
        recorder: ActivityRecorder = Depends(get_recorder),
) -> FileAccessService:
    return FileAccessService(FileRepository(session), storage, recorder)
