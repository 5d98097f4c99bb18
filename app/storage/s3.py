import logging
from contextlib import contextmanager
from urllib.parse import quote
from uuid import uuid4

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings
from app.core.exceptions import Forbidden, StorageFailure

log = logging.getLogger(__name__)

PUBLIC_TAG = {"Key": "public", "Value": "true"}


def user_namespace(user_id: int) -> str:
    return f"user-{user_id}/"


def build_key(user_id: int, filename: str) -> str:
    # unique per upload, so re-uploading a name never overwrites another row's object
    safe_name = filename.replace("/", "_").replace("\\", "_")
    return f"{user_namespace(user_id)}{uuid4().hex}-{safe_name}"


@contextmanager
def _storage_call(operation: str, key: str):
    try:
        yield
    except (ClientError, BotoCoreError) as e:
        log.error("[s3] %s failed key=%s: %s", operation, key, e)
        raise StorageFailure(f"Storage {operation} failed") from e


class S3Storage:
    """Key-addressed blob store. Every object lives under its owner's namespace.

    Visibility is kept in two places on the store side: the canned ACL and a
    ``public=true`` object tag. ``public_url`` trusts the tag.
    """

    def __init__(self, client=None, *, bucket: str | None = None, public_base_url: str | None = None):
        self.bucket = bucket or settings.S3_BUCKET
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        self.client = client or boto3.client(
            "s3",
            region_name = settings.S3_REGION,
            endpoint_url = settings.S3_ENDPOINT_URL,
            aws_access_key_id = settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key = settings.S3_SECRET_ACCESS_KEY,
            config = Config(
                signature_version="s3v4",
                connect_timeout=settings.S3_CONNECT_TIMEOUT,
                read_timeout=settings.S3_READ_TIMEOUT,
                retries={"max_attempts": settings.S3_MAX_ATTEMPTS, "mode": "standard"},
            ),
        )

    @staticmethod
    def _check_namespace(namespace: str, key: str) -> None:
        if not key.startswith(namespace):
            raise Forbidden("Access denied to this file")

    def put(self, *, key: str, body: bytes, content_type: str, is_public: bool = False) -> str:
        params = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": body,
            "ContentType": content_type,
            "ACL": "public-read" if is_public else "private",
        }
        # tag travels with the object write, so a new object is never half-public
        if is_public:
            params["Tagging"] = "public=true"
        with _storage_call("put", key):
            self.client.put_object(**params)
        return key

    def signed_url(self, *, namespace: str, key: str, expires_in: int = 3600) -> str:
        self._check_namespace(namespace, key)
        params = {"Bucket": self.bucket, "Key": key}
        with _storage_call("presign", key):
            return self.client.generate_presigned_url("get_object", Params=params, ExpiresIn=expires_in)

    def direct_url(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(key)}"

    def public_url(self, key: str) -> str | None:
        """Direct url if the object carries the public tag, else None (also on lookup errors)."""
        try:
            resp = self.client.get_object_tagging(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            log.warning("[s3] tag lookup failed key=%s: %s", key, e)
            return None

        if PUBLIC_TAG in resp.get("TagSet", []):
            return self.direct_url(key)
        return None

    def set_visibility(self, *, namespace: str, key: str, is_public: bool) -> None:
        self._check_namespace(namespace, key)
        with _storage_call("set-acl", key):
            self.client.put_object_acl(
                Bucket=self.bucket,
                Key=key,
                ACL="public-read" if is_public else "private",
            )
        try:
            with _storage_call("set-tags", key):
                self.client.put_object_tagging(
                    Bucket=self.bucket,
                    Key=key,
                    Tagging={"TagSet": [PUBLIC_TAG] if is_public else []},
                )
        except StorageFailure:
            # ACL and tag must agree; put the ACL back to what the tag still says
            try:
                self.client.put_object_acl(
                    Bucket=self.bucket,
                    Key=key,
                    ACL="private" if is_public else "public-read",
                )
            except (ClientError, BotoCoreError) as e:
                log.error("[s3] DRIFT acl revert failed key=%s: %s", key, e)
            raise

    def delete(self, *, namespace: str, key: str) -> None:
        self._check_namespace(namespace, key)
        with _storage_call("delete", key):
            self.client.delete_object(Bucket=self.bucket, Key=key)

    def list_objects(self, *, namespace: str, prefix: str = "") -> list[dict]:
        full_prefix = f"{namespace}{prefix}"
        with _storage_call("list", full_prefix):
            resp = self.client.list_objects_v2(Bucket=self.bucket, Prefix=full_prefix)

        return [
            {
                "key": item.get("Key", ""),
                "size": item.get("Size", 0),
                "last_modified": item.get("LastModified"),
            }
            for item in resp.get("Contents", [])
        ]
