import asyncio
import logging

from celery import shared_task
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.config import settings
from app.crud.logs_crud import create_log

log = logging.getLogger(__name__)

_worker_session_maker = None


def _session_maker():
    # each task runs its own event loop, so pooled connections can't be shared
    global _worker_session_maker
    if _worker_session_maker is None:
        engine = create_async_engine(settings.database_url, poolclass=NullPool)
        _worker_session_maker = async_sessionmaker(engine, expire_on_commit=False)
    return _worker_session_maker


async def persist_activity(session_maker, user_id: int, action: str, details: str | None, file_id: str | None) -> int:
    async with session_maker() as session:
        try:
            entry = await create_log(session, user_id, action, details, file_id)
        except IntegrityError:
            # subject file was deleted before the entry landed; keep the entry, drop the link
            await session.rollback()
            entry = await create_log(session, user_id, action, details, None)
        return entry.id


@shared_task(name="app.tasks.activity.write_activity_log")
def write_activity_log(user_id: int, action: str, details: str | None = None, file_id: str | None = None):
    """
    Persist one activity entry
    """
    entry_id = asyncio.run(persist_activity(_session_maker(), user_id, action, details, file_id))
    log.info(f"[activity] user={user_id} action={action} file={file_id} entry={entry_id}")
    return entry_id
