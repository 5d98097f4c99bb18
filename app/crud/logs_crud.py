"""Queries over the activity log."""
from datetime import datetime
from typing import Optional, List, Tuple

from sqlalchemy import func, desc, asc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from app.models.file import File
from app.models.log import Log

SORTABLE_FIELDS = {"timestamp": Log.timestamp, "action": Log.action}


async def create_log(
    db: AsyncSession,
    user_id: int,
    action: str,
    details: Optional[str] = None,
    file_id: Optional[str] = None,
) -> Log:
    entry = Log(user_id=user_id, action=action, details=details, file_id=file_id)
    db.add(entry)
    await db.commit()
    return entry


async def get_user_logs(
    db: AsyncSession,
    user_id: int,
    *,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "timestamp",
    sort_order: str = "desc",
    action: Optional[str] = None,
    file_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Tuple[List[Log], int]:
    """Return one page of a user's entries and the total matching count."""
    conditions = [Log.user_id == user_id]
    if action:
        conditions.append(Log.action == action)
    if file_id:
        conditions.append(Log.file_id == file_id)
    if start_date:
        conditions.append(Log.timestamp >= start_date)
    if end_date:
        conditions.append(Log.timestamp <= end_date)

    total = await db.scalar(select(func.count(Log.id)).where(*conditions))

    column = SORTABLE_FIELDS.get(sort_by, Log.timestamp)
    order = asc(column) if sort_order == "asc" else desc(column)
    result = await db.execute(
        select(Log)
        .options(selectinload(Log.file))
        .where(*conditions)
        .order_by(order, Log.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0


async def get_log(db: AsyncSession, log_id: int) -> Optional[Log]:
    result = await db.execute(
        select(Log).options(selectinload(Log.file)).where(Log.id == log_id)
    )
    return result.scalar_one_or_none()


async def get_file_logs(db: AsyncSession, file_id: str) -> List[Log]:
    result = await db.execute(
        select(Log).where(Log.file_id == file_id).order_by(Log.timestamp.desc())
    )
    return list(result.scalars().all())


async def get_log_statistics(db: AsyncSession, user_id: int, since: datetime) -> dict:
    scope = [Log.user_id == user_id, Log.timestamp >= since]

    count = func.count(Log.id).label("count")
    action_rows = await db.execute(
        select(Log.action, count).where(*scope).group_by(Log.action).order_by(desc("count"))
    )

    day = func.date(Log.timestamp).label("date")
    daily_rows = await db.execute(
        select(day, func.count(Log.id)).where(*scope).group_by(day).order_by(day)
    )

    file_rows = await db.execute(
        select(File.id, File.name, count)
        .join(Log, Log.file_id == File.id)
        .where(*scope)
        .group_by(File.id, File.name)
        .order_by(desc("count"))
        .limit(5)
    )

    return {
        "actionCounts": [{"action": a, "count": int(c)} for a, c in action_rows.all()],
        "dailyActivity": [{"date": str(d), "count": int(c)} for d, c in daily_rows.all()],
        "mostAccessedFiles": [
            {"id": fid, "name": name, "count": int(c)} for fid, name, c in file_rows.all()
        ],
    }
