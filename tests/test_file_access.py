"""Tests for the file access service: policy, url selection and store/metadata ordering."""

import pytest

from app.core.exceptions import (
    Forbidden,
    MetadataFailure,
    NotFound,
    StorageFailure,
    Unauthorized,
    ValidationFailure,
)
from app.models.log import LogAction
from app.services.file_access import normalize_folder


async def _upload(service, user, name="report.pdf", is_public=False, folder=None, body=b"%PDF-1.4"):
    return await service.upload(user, body, name, "application/pdf", folder=folder, is_public=is_public)


class TestUpload:

    @pytest.mark.asyncio
    async def test_upload_writes_store_then_metadata(self, service, storage, files, recorder, alice):
        db_file = await _upload(service, alice)

        assert db_file.storage_key.startswith("user-1/")
        assert db_file.storage_key.endswith("-report.pdf")
        assert storage.objects[db_file.storage_key]["body"] == b"%PDF-1.4"
        assert files.rows[db_file.id].size == len(b"%PDF-1.4")
        assert db_file.is_public is False
        assert recorder.entries == [(1, LogAction.UPLOAD, "Uploaded file: report.pdf", db_file.id)]

    @pytest.mark.asyncio
    async def test_upload_public_tags_object(self, service, storage, alice):
        db_file = await _upload(service, alice, is_public=True)

        assert db_file.is_public is True
        assert storage.objects[db_file.storage_key]["tag_public"] is True
        assert storage.objects[db_file.storage_key]["acl_public"] is True

    @pytest.mark.asyncio
    async def test_upload_requires_caller(self, service, storage, files):
        with pytest.raises(Unauthorized):
            await _upload(service, None)
        assert storage.objects == {}
        assert files.rows == {}

    @pytest.mark.asyncio
    async def test_oversized_upload_touches_nothing(self, service, storage, files, recorder, alice):
        with pytest.raises(ValidationFailure):
            await _upload(service, alice, body=b"x" * 1025)

        assert storage.calls == []
        assert files.rows == {}
        assert recorder.entries == []

    @pytest.mark.asyncio
    async def test_upload_at_limit_is_accepted(self, service, alice):
        db_file = await _upload(service, alice, body=b"x" * 1024)
        assert db_file.size == 1024

    @pytest.mark.asyncio
    async def test_upload_without_name_is_rejected(self, service, alice):
        with pytest.raises(ValidationFailure):
            await service.upload(alice, b"data", "", "text/plain")

    @pytest.mark.asyncio
    async def test_missing_content_type_falls_back(self, service, alice):
        db_file = await service.upload(alice, b"data", "notes", None)
        assert db_file.content_type == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_store_failure_creates_no_row(self, service, storage, files, recorder, alice):
        storage.fail_on.add("put")

        with pytest.raises(StorageFailure):
            await _upload(service, alice)

        assert files.rows == {}
        assert recorder.entries == []

    @pytest.mark.asyncio
    async def test_metadata_failure_leaves_orphan_and_logs_it(self, service, storage, files, recorder, alice, caplog):
        files.fail_on.add("create")

        with pytest.raises(MetadataFailure):
            await _upload(service, alice)

        # accepted partial failure: the object is left behind for reconciliation
        assert len(storage.objects) == 1
        orphan_key = next(iter(storage.objects))
        assert orphan_key in caplog.text
        assert recorder.entries == []

    @pytest.mark.asyncio
    async def test_same_name_twice_gets_distinct_keys(self, service, alice):
        first = await _upload(service, alice)
        second = await _upload(service, alice)
        assert first.storage_key != second.storage_key


class TestDownloadUrl:

    @pytest.mark.asyncio
    async def test_public_file_anonymous_gets_direct_url(self, service, recorder, alice):
        db_file = await _upload(service, alice, is_public=True)
        recorder.entries.clear()

        issued = await service.download_url(None, db_file.id)

        assert issued.url == f"https://test-bucket.s3.us-east-1.amazonaws.com/{db_file.storage_key}"
        assert "X-Amz-Expires" not in issued.url
        assert issued.file.last_accessed is not None
        assert recorder.entries == []

    @pytest.mark.asyncio
    async def test_private_file_anonymous_is_unauthorized(self, service, alice):
        db_file = await _upload(service, alice)
        with pytest.raises(Unauthorized):
            await service.download_url(None, db_file.id)

    @pytest.mark.asyncio
    async def test_private_file_other_user_is_forbidden(self, service, alice, bob):
        db_file = await _upload(service, alice)
        with pytest.raises(Forbidden):
            await service.download_url(bob, db_file.id)

    @pytest.mark.asyncio
    async def test_private_file_owner_gets_signed_url(self, service, recorder, alice):
        db_file = await _upload(service, alice)

        issued = await service.download_url(alice, db_file.id)

        assert "X-Amz-Expires=3600" in issued.url
        assert recorder.entries[-1] == (1, LogAction.DOWNLOAD, "Downloaded file: report.pdf", db_file.id)

    @pytest.mark.asyncio
    async def test_public_file_without_tag_falls_back_to_owner_signed_url(self, service, storage, bob, alice):
        db_file = await _upload(service, alice, is_public=True)
        storage.tag_lookup_broken = True

        issued = await service.download_url(bob, db_file.id)

        assert "X-Amz-Signature" in issued.url
        assert issued.url.startswith("https://test-bucket.s3.us-east-1.amazonaws.com/user-1/")

    @pytest.mark.asyncio
    async def test_unknown_file_is_not_found(self, service, alice):
        with pytest.raises(NotFound):
            await service.download_url(alice, "missing")

    @pytest.mark.asyncio
    async def test_failed_url_issuance_does_not_touch(self, service, storage, alice):
        db_file = await _upload(service, alice)
        storage.fail_on.add("presign")

        with pytest.raises(StorageFailure):
            await service.download_url(alice, db_file.id)
        assert db_file.last_accessed is None


class TestToggleVisibility:

    @pytest.mark.asyncio
    async def test_toggle_twice_restores_original(self, service, storage, alice):
        db_file = await _upload(service, alice)

        toggled = await service.toggle_visibility(alice, db_file.id)
        assert toggled.is_public is True
        assert storage.objects[db_file.storage_key]["tag_public"] is True

        toggled = await service.toggle_visibility(alice, db_file.id)
        assert toggled.is_public is False
        assert storage.objects[db_file.storage_key]["tag_public"] is False

    @pytest.mark.asyncio
    async def test_toggle_records_old_and_new_value(self, service, recorder, alice):
        db_file = await _upload(service, alice)

        await service.toggle_visibility(alice, db_file.id)

        assert recorder.entries[-1] == (
            1, LogAction.TOGGLE_VISIBILITY, "Toggled file visibility: report.pdf (false -> true)", db_file.id
        )

    @pytest.mark.asyncio
    async def test_non_owner_cannot_toggle(self, service, storage, alice, bob):
        db_file = await _upload(service, alice)
        with pytest.raises(Forbidden):
            await service.toggle_visibility(bob, db_file.id)
        assert "set_visibility" not in storage.calls

    @pytest.mark.asyncio
    async def test_anonymous_cannot_toggle(self, service, alice):
        db_file = await _upload(service, alice)
        with pytest.raises(Unauthorized):
            await service.toggle_visibility(None, db_file.id)

    @pytest.mark.asyncio
    async def test_unknown_file(self, service, alice):
        with pytest.raises(NotFound):
            await service.toggle_visibility(alice, "missing")

    @pytest.mark.asyncio
    async def test_store_failure_leaves_metadata_unchanged(self, service, storage, recorder, alice):
        db_file = await _upload(service, alice)
        storage.fail_on.add("set_visibility")
        recorder.entries.clear()

        with pytest.raises(StorageFailure):
            await service.toggle_visibility(alice, db_file.id)

        assert db_file.is_public is False
        assert recorder.entries == []

    @pytest.mark.asyncio
    async def test_metadata_failure_reverts_store(self, service, storage, files, alice):
        db_file = await _upload(service, alice)
        files.fail_on.add("set_public")

        with pytest.raises(MetadataFailure):
            await service.toggle_visibility(alice, db_file.id)

        assert storage.calls.count("set_visibility") == 2
        assert storage.objects[db_file.storage_key]["tag_public"] is False


class TestShareLink:

    @pytest.mark.asyncio
    async def test_public_file_share_link_points_at_viewer(self, service, recorder, alice):
        db_file = await _upload(service, alice, is_public=True)
        recorder.entries.clear()

        issued = await service.share_link(None, db_file.id)

        assert issued.url == f"http://app.test/file/view/{db_file.id}"
        assert recorder.entries == []

    @pytest.mark.asyncio
    async def test_share_records_for_known_caller(self, service, recorder, alice, bob):
        db_file = await _upload(service, alice, is_public=True)

        await service.share_link(bob, db_file.id)

        assert recorder.entries[-1] == (2, LogAction.SHARE, "Shared file: report.pdf", db_file.id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("caller", [None, "owner", "other"])
    async def test_private_file_is_forbidden_for_everyone(self, service, alice, bob, caller):
        db_file = await _upload(service, alice)
        who = {None: None, "owner": alice, "other": bob}[caller]

        with pytest.raises(Forbidden):
            await service.share_link(who, db_file.id)

    @pytest.mark.asyncio
    async def test_unknown_file(self, service):
        with pytest.raises(NotFound):
            await service.share_link(None, "missing")


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_removes_object_then_row(self, service, storage, files, recorder, alice):
        db_file = await _upload(service, alice)

        await service.delete(alice, db_file.id)

        assert storage.objects == {}
        assert files.rows == {}
        assert recorder.entries[-1] == (1, LogAction.DELETE, "Deleted file: report.pdf", None)

    @pytest.mark.asyncio
    async def test_deleted_file_is_gone_everywhere(self, service, alice):
        db_file = await _upload(service, alice)
        await service.delete(alice, db_file.id)

        with pytest.raises(NotFound):
            await service.download_url(alice, db_file.id)
        listed = await service.list_files(alice)
        assert db_file.id not in [item.file.id for item in listed]

    @pytest.mark.asyncio
    async def test_non_owner_cannot_delete(self, service, storage, alice, bob):
        db_file = await _upload(service, alice)

        with pytest.raises(Forbidden):
            await service.delete(bob, db_file.id)
        assert db_file.storage_key in storage.objects

    @pytest.mark.asyncio
    async def test_store_failure_keeps_metadata(self, service, storage, files, alice):
        db_file = await _upload(service, alice)
        storage.fail_on.add("delete")

        with pytest.raises(StorageFailure):
            await service.delete(alice, db_file.id)
        assert db_file.id in files.rows

    @pytest.mark.asyncio
    async def test_metadata_failure_after_store_delete_is_logged(self, service, storage, files, recorder, alice, caplog):
        db_file = await _upload(service, alice)
        files.fail_on.add("delete")

        with pytest.raises(MetadataFailure):
            await service.delete(alice, db_file.id)

        assert storage.objects == {}
        assert "dangling row" in caplog.text
        assert db_file.storage_key in caplog.text
        assert LogAction.DELETE not in recorder.actions()


class TestListFiles:

    @pytest.mark.asyncio
    async def test_newest_first_with_urls(self, service, recorder, alice):
        older = await _upload(service, alice, name="a.txt")
        newer = await _upload(service, alice, name="b.txt", is_public=True)
        recorder.entries.clear()

        listed = await service.list_files(alice)

        assert [item.file.id for item in listed] == [newer.id, older.id]
        assert "X-Amz-Signature" not in listed[0].url
        assert "X-Amz-Signature" in listed[1].url
        assert recorder.actions() == [LogAction.VIEW_FILES]

    @pytest.mark.asyncio
    async def test_listing_does_not_touch_files(self, service, alice):
        db_file = await _upload(service, alice)
        await service.list_files(alice)
        assert db_file.last_accessed is None

    @pytest.mark.asyncio
    async def test_folder_is_exact_match_and_root_is_separate(self, service, alice):
        root = await _upload(service, alice, name="root.txt")
        docs = await _upload(service, alice, name="a.txt", folder="docs")
        await _upload(service, alice, name="b.txt", folder="docs/2024")

        assert [i.file.id for i in await service.list_files(alice)] == [root.id]
        assert [i.file.id for i in await service.list_files(alice, "")] == [root.id]
        assert [i.file.id for i in await service.list_files(alice, "docs")] == [docs.id]

    @pytest.mark.asyncio
    async def test_only_own_files(self, service, alice, bob):
        await _upload(service, alice)
        assert await service.list_files(bob) == []

    @pytest.mark.asyncio
    async def test_requires_caller(self, service):
        with pytest.raises(Unauthorized):
            await service.list_files(None)


class TestAudit:

    @pytest.mark.asyncio
    async def test_recorder_failure_never_fails_operation(self, service, recorder, alice):
        def boom(*args, **kwargs):
            raise RuntimeError("queue down")

        recorder.record = boom
        db_file = await _upload(service, alice)
        assert db_file.id


def test_normalize_folder():
    assert normalize_folder(None) is None
    assert normalize_folder("") is None
    assert normalize_folder(" /docs/ ") == "docs"
    assert normalize_folder("docs/2024") == "docs/2024"


@pytest.mark.asyncio
async def test_end_to_end_scenario(service, storage, alice, bob):
    db_file = await _upload(service, alice, name="report.pdf")

    listed = await service.list_files(alice)
    assert [i.file.id for i in listed] == [db_file.id]
    assert "X-Amz-Signature" in listed[0].url

    with pytest.raises(Unauthorized):
        await service.download_url(None, db_file.id)

    toggled = await service.toggle_visibility(alice, db_file.id)
    assert toggled.is_public is True

    issued = await service.download_url(None, db_file.id)
    assert "X-Amz-Signature" not in issued.url

    shared = await service.share_link(None, db_file.id)
    assert shared.url.endswith(f"/file/view/{db_file.id}")

    with pytest.raises(Forbidden):
        await service.delete(bob, db_file.id)

    await service.delete(alice, db_file.id)

    with pytest.raises(NotFound):
        await service.share_link(None, db_file.id)
    assert storage.objects == {}
