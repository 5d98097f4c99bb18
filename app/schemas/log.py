from datetime import datetime

from pydantic import AliasChoices, Field

from app.schemas.base import CamelModel


class LogFile(CamelModel):
    id: str
    name: str
    type: str = Field(validation_alias=AliasChoices("type", "content_type"))


class LogEntry(CamelModel):
    id: int
    user_id: int
    action: str
    details: str | None = None
    file_id: str | None = None
    timestamp: datetime


class LogRead(LogEntry):
    file: LogFile | None = None


class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    pages: int


class LogPage(CamelModel):
    logs: list[LogRead]
    pagination: Pagination


class LogDetail(CamelModel):
    log: LogRead


class FileLogs(CamelModel):
    logs: list[LogEntry]


class ActionCount(CamelModel):
    action: str
    count: int


class DailyCount(CamelModel):
    date: str
    count: int


class FileCount(CamelModel):
    id: str
    name: str
    count: int


class LogStatistics(CamelModel):
    action_counts: list[ActionCount]
    daily_activity: list[DailyCount]
    most_accessed_files: list[FileCount]
