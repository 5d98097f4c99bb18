"""File metadata store on top of an AsyncSession."""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.exceptions import MetadataFailure
from app.models.file import File

log = logging.getLogger(__name__)


@contextmanager
def _metadata_call(operation: str):
    try:
        yield
    except SQLAlchemyError as e:
        log.error("[db] %s failed: %s", operation, e)
        raise MetadataFailure() from e


class FileRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        *,
        owner_id: int,
        name: str,
        storage_key: str,
        size: int,
        content_type: str,
        folder: Optional[str],
        is_public: bool,
    ) -> File:
        db_file = File(
            owner_id=owner_id,
            name=name,
            storage_key=storage_key,
            size=size,
            content_type=content_type,
            folder=folder,
            is_public=is_public,
        )
        with _metadata_call("create file"):
            self.session.add(db_file)
            await self.session.commit()
            await self.session.refresh(db_file)
        return db_file

    async def get(self, file_id: str) -> Optional[File]:
        with _metadata_call("get file"):
            return await self.session.get(File, file_id)

    async def list_for_owner(self, owner_id: int, folder: Optional[str] = None) -> List[File]:
        """Exact folder match; no folder means the root grouping, not every folder."""
        query = select(File).where(File.owner_id == owner_id)
        if folder:
            query = query.where(File.folder == folder)
        else:
            query = query.where(File.folder.is_(None))
        query = query.order_by(File.uploaded_at.desc(), File.id)

        with _metadata_call("list files"):
            result = await self.session.execute(query)
            return list(result.scalars().all())

    async def touch(self, db_file: File, when: datetime) -> File:
        with _metadata_call("touch file"):
            db_file.last_accessed = when
            await self.session.commit()
        return db_file

    async def set_public(self, db_file: File, is_public: bool) -> File:
        with _metadata_call("update visibility"):
            db_file.is_public = is_public
            await self.session.commit()
            await self.session.refresh(db_file)
        return db_file

    async def delete(self, db_file: File) -> None:
        with _metadata_call("delete file"):
            await self.session.delete(db_file)
            await self.session.commit()
