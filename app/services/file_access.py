"""
Access control and link issuance for stored files.

Every file operation goes through FileAccessService: it resolves the caller
(possibly anonymous), loads fresh metadata, applies the ownership and
visibility policy and, for reads, picks the kind of url to hand out.

Visibility lives in two places, the ``files.is_public`` column and the
object's ACL + ``public`` tag in the bucket. Only this service changes them,
and always store first, metadata second. A failed store call leaves metadata
untouched. Nothing here serialises concurrent toggles of the same file.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi.concurrency import run_in_threadpool

from app.config import settings
from app.core.exceptions import (
    Forbidden,
    MetadataFailure,
    NotFound,
    StorageFailure,
    Unauthorized,
    ValidationFailure,
)
from app.crud.files_crud import FileRepository
from app.models.file import File
from app.models.log import LogAction
from app.models.user import User
from app.services.activity import ActivityRecorder
from app.storage.s3 import S3Storage, build_key, user_namespace

log = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class IssuedUrl:
    url: str
    file: File


@dataclass
class ListedFile:
    file: File
    url: str


def normalize_folder(folder: str | None) -> str | None:
    if folder is None:
        return None
    folder = folder.strip().strip("/")
    return folder or None


class FileAccessService:
    def __init__(
        self,
        files: FileRepository,
        storage: S3Storage,
        recorder: ActivityRecorder,
        *,
        max_upload_bytes: int | None = None,
        signed_url_ttl: int | None = None,
        app_url: str | None = None,
    ):
        self.files = files
        self.storage = storage
        self.recorder = recorder
        self.max_upload_bytes = max_upload_bytes or settings.MAX_UPLOAD_BYTES
        self.signed_url_ttl = signed_url_ttl or settings.SIGNED_URL_EXPIRE_SECONDS
        self.app_url = (app_url or settings.APP_URL).rstrip("/")

    # ------------- helpers -------------

    @staticmethod
    def _require_caller(caller: User | None) -> User:
        if caller is None:
            raise Unauthorized()
        return caller

    async def _load(self, file_id: str) -> File:
        db_file = await self.files.get(file_id)
        if db_file is None:
            raise NotFound("File not found")
        return db_file

    async def _load_owned(self, caller: User, file_id: str) -> File:
        db_file = await self._load(file_id)
        if db_file.owner_id != caller.id:
            raise Forbidden()
        return db_file

    def _audit(self, user_id: int, action: LogAction, details: str | None = None, file_id: str | None = None):
        try:
            self.recorder.record(user_id, action, details, file_id)
        except Exception:
            log.exception(f"[audit] recorder raised for action={action.value}")

    async def _signed_url(self, db_file: File) -> str:
        return await run_in_threadpool(
            self.storage.signed_url,
            namespace=user_namespace(db_file.owner_id),
            key=db_file.storage_key,
            expires_in=self.signed_url_ttl,
        )

    async def _resolve_url(self, db_file: File) -> str:
        """Direct url for public files, signed url otherwise.

        A public file whose tag can't be confirmed gets an owner-scoped signed url.
        """
        if db_file.is_public:
            url = await run_in_threadpool(self.storage.public_url, db_file.storage_key)
            if url:
                return url
            log.warning(f"[access] public file {db_file.id} has no public tag, issuing signed url")
        return await self._signed_url(db_file)

    # ------------- operations -------------

    async def upload(
        self,
        caller: User | None,
        body: bytes,
        filename: str,
        content_type: str | None = None,
        folder: str | None = None,
        is_public: bool = False,
    ) -> File:
        caller = self._require_caller(caller)
        if not filename:
            raise ValidationFailure("No file uploaded")
        if len(body) > self.max_upload_bytes:
            raise ValidationFailure(f"File exceeds the {self.max_upload_bytes} byte limit")

        content_type = content_type or DEFAULT_CONTENT_TYPE
        folder = normalize_folder(folder)
        key = build_key(caller.id, filename)

        await run_in_threadpool(
            self.storage.put, key=key, body=body, content_type=content_type, is_public=is_public
        )

        try:
            db_file = await self.files.create(
                owner_id=caller.id,
                name=filename,
                storage_key=key,
                size=len(body),
                content_type=content_type,
                folder=folder,
                is_public=is_public,
            )
        except MetadataFailure:
            # object stays in the bucket with no row pointing at it
            log.error(f"[upload] orphaned object key={key} owner={caller.id}, needs manual reconciliation")
            raise

        self._audit(caller.id, LogAction.UPLOAD, f"Uploaded file: {filename}", db_file.id)
        return db_file

    async def download_url(self, caller: User | None, file_id: str) -> IssuedUrl:
        db_file = await self._load(file_id)

        if not db_file.is_public:
            if caller is None:
                raise Unauthorized("Authentication required")
            if db_file.owner_id != caller.id:
                raise Forbidden()

        url = await self._resolve_url(db_file)
        await self.files.touch(db_file, datetime.now(timezone.utc))

        if caller is not None:
            self._audit(caller.id, LogAction.DOWNLOAD, f"Downloaded file: {db_file.name}", db_file.id)
        return IssuedUrl(url=url, file=db_file)

    async def toggle_visibility(self, caller: User | None, file_id: str) -> File:
        caller = self._require_caller(caller)
        db_file = await self._load_owned(caller, file_id)

        old_value = db_file.is_public
        new_value = not old_value
        namespace = user_namespace(db_file.owner_id)

        await run_in_threadpool(
            self.storage.set_visibility, namespace=namespace, key=db_file.storage_key, is_public=new_value
        )

        try:
            db_file = await self.files.set_public(db_file, new_value)
        except MetadataFailure:
            log.error(f"[visibility] metadata update failed for file {file_id}, reverting store to {old_value}")
            try:
                await run_in_threadpool(
                    self.storage.set_visibility, namespace=namespace, key=db_file.storage_key, is_public=old_value
                )
            except StorageFailure:
                log.error(f"[visibility] DRIFT file {file_id}: store={new_value} db={old_value}")
            raise

        self._audit(
            caller.id,
            LogAction.TOGGLE_VISIBILITY,
            f"Toggled file visibility: {db_file.name} ({str(old_value).lower()} -> {str(new_value).lower()})",
            db_file.id,
        )
        return db_file

    async def share_link(self, caller: User | None, file_id: str) -> IssuedUrl:
        db_file = await self._load(file_id)
        if not db_file.is_public:
            raise Forbidden("This file is not publicly shared")

        share_url = f"{self.app_url}/file/view/{db_file.id}"

        if caller is not None:
            self._audit(caller.id, LogAction.SHARE, f"Shared file: {db_file.name}", db_file.id)
        return IssuedUrl(url=share_url, file=db_file)

    async def delete(self, caller: User | None, file_id: str) -> None:
        caller = self._require_caller(caller)
        db_file = await self._load_owned(caller, file_id)
        name = db_file.name

        await run_in_threadpool(
            self.storage.delete, namespace=user_namespace(db_file.owner_id), key=db_file.storage_key
        )
        try:
            await self.files.delete(db_file)
        except MetadataFailure:
            log.error(f"[delete] dangling row file={db_file.id} key={db_file.storage_key}, object already removed")
            raise

        self._audit(caller.id, LogAction.DELETE, f"Deleted file: {name}")

    async def list_files(self, caller: User | None, folder: str | None = None) -> list[ListedFile]:
        caller = self._require_caller(caller)
        folder = normalize_folder(folder)

        rows = await self.files.list_for_owner(caller.id, folder)
        urls = await asyncio.gather(*(self._resolve_url(f) for f in rows))

        self._audit(caller.id, LogAction.VIEW_FILES, f"Listed files in folder: {folder or ''}")
        return [ListedFile(file=f, url=url) for f, url in zip(rows, urls)]
