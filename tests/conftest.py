"""Shared fixtures: in-memory stand-ins for the object store, metadata store and recorder."""

import os

os.environ.setdefault("DB_HOST", "localhost")
os.environ.setdefault("DB_PORT", "5432")
os.environ.setdefault("DB_USER", "test")
os.environ.setdefault("DB_PASS", "test")
os.environ.setdefault("DB_NAME", "test")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("S3_BUCKET", "test-bucket")
os.environ.setdefault("S3_REGION", "us-east-1")
os.environ.setdefault("S3_ACCESS_KEY_ID", "testing")
os.environ.setdefault("S3_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")

from datetime import datetime, timedelta, timezone
from urllib.parse import quote
from uuid import uuid4

import pytest

from app.core.exceptions import Forbidden, MetadataFailure, StorageFailure
from app.models.file import File
from app.models.log import Log  # noqa: F401  configures every mapper
from app.models.user import User
from app.services.file_access import FileAccessService

PUBLIC_BASE = "https://test-bucket.s3.us-east-1.amazonaws.com"


class FakeStorage:
    """Mirrors S3Storage's contract over a dict. ``fail_on`` names operations that raise."""

    def __init__(self):
        self.objects = {}
        self.fail_on = set()
        self.tag_lookup_broken = False
        self.calls = []

    def _maybe_fail(self, operation):
        self.calls.append(operation)
        if operation in self.fail_on:
            raise StorageFailure(f"Storage {operation} failed")

    @staticmethod
    def _check_namespace(namespace, key):
        if not key.startswith(namespace):
            raise Forbidden("Access denied to this file")

    def put(self, *, key, body, content_type, is_public=False):
        self._maybe_fail("put")
        self.objects[key] = {"body": body, "content_type": content_type, "acl_public": is_public, "tag_public": is_public}
        return key

    def signed_url(self, *, namespace, key, expires_in=3600):
        self._maybe_fail("presign")
        self._check_namespace(namespace, key)
        return f"{PUBLIC_BASE}/{quote(key)}?X-Amz-Expires={expires_in}&X-Amz-Signature=fake"

    def public_url(self, key):
        self.calls.append("public_url")
        if self.tag_lookup_broken:
            return None
        obj = self.objects.get(key)
        if obj and obj["tag_public"]:
            return f"{PUBLIC_BASE}/{quote(key)}"
        return None

    def set_visibility(self, *, namespace, key, is_public):
        self._check_namespace(namespace, key)
        self._maybe_fail("set_visibility")
        self.objects[key]["acl_public"] = is_public
        self.objects[key]["tag_public"] = is_public

    def delete(self, *, namespace, key):
        self._check_namespace(namespace, key)
        self._maybe_fail("delete")
        self.objects.pop(key, None)


class FakeFileRepository:
    def __init__(self):
        self.rows = {}
        self.fail_on = set()
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _maybe_fail(self, operation):
        if operation in self.fail_on:
            raise MetadataFailure()

    async def create(self, *, owner_id, name, storage_key, size, content_type, folder, is_public):
        self._maybe_fail("create")
        self._clock += timedelta(seconds=1)
        db_file = File(
            id=str(uuid4()),
            owner_id=owner_id,
            name=name,
            storage_key=storage_key,
            size=size,
            content_type=content_type,
            folder=folder,
            is_public=is_public,
            uploaded_at=self._clock,
        )
        self.rows[db_file.id] = db_file
        return db_file

    async def get(self, file_id):
        self._maybe_fail("get")
        return self.rows.get(file_id)

    async def list_for_owner(self, owner_id, folder=None):
        rows = [f for f in self.rows.values() if f.owner_id == owner_id and f.folder == (folder or None)]
        return sorted(rows, key=lambda f: f.uploaded_at, reverse=True)

    async def touch(self, db_file, when):
        self._maybe_fail("touch")
        db_file.last_accessed = when
        return db_file

    async def set_public(self, db_file, is_public):
        self._maybe_fail("set_public")
        db_file.is_public = is_public
        return db_file

    async def delete(self, db_file):
        self._maybe_fail("delete")
        self.rows.pop(db_file.id, None)


class FakeRecorder:
    def __init__(self):
        self.entries = []

    def record(self, user_id, action, details=None, file_id=None):
        self.entries.append((user_id, action, details, file_id))

    def actions(self):
        return [entry[1] for entry in self.entries]


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def files():
    return FakeFileRepository()


@pytest.fixture
def recorder():
    return FakeRecorder()


@pytest.fixture
def service(files, storage, recorder):
    return FileAccessService(
        files,
        storage,
        recorder,
        max_upload_bytes=1024,
        signed_url_ttl=3600,
        app_url="http://app.test",
    )


@pytest.fixture
def alice():
    return User(id=1, username="alice", hashed_password="x")


@pytest.fixture
def bob():
    return User(id=2, username="bob", hashed_password="x")
