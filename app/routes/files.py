from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from app.core.deps import get_current_user, get_optional_user
from app.core.deps_file import get_file_service
from app.models.user import User
from app.schemas.base import MessageResponse
from app.schemas.file import (
    DownloadURL,
    FileList,
    FileListItem,
    FileRead,
    ShareLink,
    UploadResponse,
    VisibilityResponse,
)
from app.services.file_access import FileAccessService
from app.config import settings


router = APIRouter(
    prefix="/file",
    tags=["Files"]
)

# -------------Upload files -----------------

@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    folder: str = Form(""),
    is_public: bool = Form(False, alias="isPublic"),
    user: User = Depends(get_current_user),
    service: FileAccessService = Depends(get_file_service),
):
    # one byte past the limit is enough to reject without buffering the rest
    body = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    db_file = await service.upload(
        user,
        body,
        file.filename or "",
        file.content_type,
        folder=folder,
        is_public=is_public,
    )
    return UploadResponse(message="File uploaded successfully", file=FileRead.model_validate(db_file))


#-----------List my files-----------------

@router.get("/list", response_model=FileList)
async def list_files(
    folder: str = "",
    user: User = Depends(get_current_user),
    service: FileAccessService = Depends(get_file_service),
):
    listed = await service.list_files(user, folder)
    return FileList(files=[FileListItem.from_listed(item) for item in listed])


#-----------Download url------------------

@router.get("/{file_id}/url", response_model=DownloadURL)
async def download_url(
    file_id: str,
    user: User | None = Depends(get_optional_user),
    service: FileAccessService = Depends(get_file_service),
):
    issued = await service.download_url(user, file_id)
    return DownloadURL.model_validate({"url": issued.url, "file": issued.file})


#-----------Visibility------------------

@router.patch("/{file_id}/visibility", response_model=VisibilityResponse)
async def toggle_visibility(
    file_id: str,
    user: User = Depends(get_current_user),
    service: FileAccessService = Depends(get_file_service),
):
    db_file = await service.toggle_visibility(user, file_id)
    state = "public" if db_file.is_public else "private"
    return VisibilityResponse.model_validate({"message": f"File is now {state}", "file": db_file})


#-----------Share link------------------

@router.get("/{file_id}/share", response_model=ShareLink)
async def share_link(
    file_id: str,
    user: User | None = Depends(get_optional_user),
    service: FileAccessService = Depends(get_file_service),
):
    issued = await service.share_link(user, file_id)
    return ShareLink.model_validate({"share_url": issued.url, "file": issued.file})


#-----------Delete-------------

@router.delete("/{file_id}", response_model=MessageResponse)
async def delete_file(
    file_id: str,
    user: User = Depends(get_current_user),
    service: FileAccessService = Depends(get_file_service),
):
    await service.delete(user, file_id)
    return MessageResponse(message="File deleted successfully")
