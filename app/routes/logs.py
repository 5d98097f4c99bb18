import math
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.deps import get_current_user
from app.core.exceptions import Forbidden, NotFound
from app.crud import logs_crud
from app.database import get_async_session
from app.models.file import File
from app.models.user import User
from app.schemas.log import FileLogs, LogDetail, LogPage, LogStatistics

router = APIRouter(
    prefix="/log",
    tags=["Logs"]
)

TIME_RANGES = {
    "7days": 7,
    "14days": 14,
    "30days": 30,
    "90days": 90,
    "1year": 365,
}


@router.get("", response_model=LogPage)
async def user_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = Query("timestamp", alias="sortBy", pattern="^(timestamp|action)$"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    action: str | None = None,
    file_id: str | None = Query(None, alias="fileId"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    logs, total = await logs_crud.get_user_logs(
        session,
        user.id,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        action=action,
        file_id=file_id,
        start_date=start_date,
        end_date=end_date,
    )
    return LogPage.model_validate({
        "logs": logs,
        "pagination": {"total": total, "page": page, "limit": limit, "pages": math.ceil(total / limit)},
    })


@router.get("/statistics", response_model=LogStatistics)
async def log_statistics(
    time_range: str = Query("30days", alias="timeRange"),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    days = TIME_RANGES.get(time_range, 30)
    since = datetime.now(timezone.utc) - timedelta(days=days)
    stats = await logs_crud.get_log_statistics(session, user.id, since)
    return LogStatistics.model_validate(stats)


@router.get("/file/{file_id}", response_model=FileLogs)
async def file_activity(
    file_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    db_file = await session.get(File, file_id)
    if not db_file:
        raise NotFound("File not found")
    if db_file.owner_id != user.id:
        raise Forbidden()

    logs = await logs_crud.get_file_logs(session, file_id)
    return FileLogs.model_validate({"logs": logs})


@router.get("/{log_id}", response_model=LogDetail)
async def log_details(
    log_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    entry = await logs_crud.get_log(session, log_id)
    if not entry:
        raise NotFound("Log not found")
    if entry.user_id != user.id:
        raise Forbidden()

    return LogDetail.model_validate({"log": entry})
