from pydantic import AliasChoices, Field
from datetime import datetime

from app.schemas.base import CamelModel


class FileRef(CamelModel):
    id: str
    name: str


class VisibilityFile(FileRef):
    is_public: bool


class SharedFile(FileRef):
    type: str = Field(validation_alias=AliasChoices("type", "content_type"))


class FileSummary(SharedFile):
    size: int
    is_public: bool


class FileRead(FileSummary):
    folder: str | None = None
    uploaded_at: datetime | None = None


class FileListItem(FileRead):
    last_accessed: datetime | None = None
    url: str

    @classmethod
    def from_listed(cls, listed) -> "FileListItem":
        return cls(**FileRead.model_validate(listed.file).model_dump(), last_accessed=listed.file.last_accessed, url=listed.url)


class UploadResponse(CamelModel):
    message: str
    file: FileRead


class DownloadURL(CamelModel):
    url: str
    file: FileSummary


class ShareLink(CamelModel):
    share_url: str
    file: SharedFile


class VisibilityResponse(CamelModel):
    message: str
    file: VisibilityFile


class FileList(CamelModel):
    files: list[FileListItem]
