"""Tests for file operations business logic."""

from urllib.parse import urlparse

import pytest

from server.apps.drive.exceptions import (
    AccessDeniedError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    UpstreamStorageError,
)
from server.apps.drive.infrastructure.storage import FileStorage
from server.apps.drive.logic.file_operations import (
    bulk_delete_files,
    bulk_move_files,
    confirm_upload,
    delete_file,
    get_download_url,
    get_file,
    get_file_metadata,
    get_storage_info,
    list_all_files,
    list_files,
    move_file,
    rename_file,
    request_upload,
    search_files,
)
from server.apps.drive.logic.folder_operations import create_folder
from server.apps.drive.models import File, StorageAccount, UploadStatus

_BUCKET = 'valet-drive'


def _put(client, file_instance, body=b'content'):
    client.put_object(Bucket=_BUCKET, Key=file_instance.object_key, Body=body)


@pytest.mark.django_db
class TestRequestUpload:
    """Tests for step 1 of the upload flow."""

    def test_request_upload_creates_pending_record(self, user, mock_s3):
        """A PENDING record and a presigned PUT URL are returned."""
        ticket = request_upload('report.pdf', 1024, None, user)

        file_instance = File.objects.get(id=ticket.file_id)
        assert file_instance.upload_status == UploadStatus.PENDING
        assert file_instance.file_name == 'report.pdf'
        assert file_instance.file_size == 1024
        assert file_instance.upload_session_id
        assert ticket.object_key == file_instance.object_key
        assert ticket.object_key.startswith(f'user-{user.id}/report_')
        assert ticket.object_key.endswith('.pdf')
        assert ticket.expires_in_minutes == 15
        assert ticket.object_key in urlparse(ticket.upload_url).path

    def test_request_upload_into_folder(self, user, mock_s3):
        """The folder path becomes part of the object key."""
        docs = create_folder('Documents', None, user)
        photos = create_folder('Photos', docs.id, user)

        ticket = request_upload('cat.jpg', 10, photos.id, user)

        assert ticket.object_key.startswith(
            f'user-{user.id}/Documents/Photos/cat_',
        )
        assert File.objects.get(id=ticket.file_id).folder == photos

    def test_blank_name_gets_placeholder(self, user, mock_s3):
        """A blank name is replaced by a generated one."""
        ticket = request_upload('  ', 10, None, user)

        assert File.objects.get(id=ticket.file_id).file_name.startswith(
            'unnamed_',
        )

    @pytest.mark.parametrize('size', [0, -5, None])
    def test_invalid_size(self, user, mock_s3, size):
        """Sizes must be positive."""
        with pytest.raises(InvalidInputError):
            request_upload('a.txt', size, None, user)

        assert not File.objects.exists()

    def test_permission_required(self, user, mock_s3):
        """Users without the write flag cannot upload."""
        StorageAccount.objects.filter(user=user).update(can_write=False)

        with pytest.raises(PermissionDeniedError):
            request_upload('a.txt', 10, None, user)

        assert not File.objects.exists()

    def test_folder_of_other_user(self, user, other_user, mock_s3):
        """Uploading into a foreign folder is denied, no record is left."""
        foreign = create_folder('Private', None, other_user)

        with pytest.raises(AccessDeniedError):
            request_upload('a.txt', 10, foreign.id, user)

        assert not File.objects.exists()

    def test_quota_scenario(self, user, mock_s3, make_file):
        """99 MB used of 100 MB: 2 MB is refused, 0.5 MB is accepted."""
        StorageAccount.objects.filter(user=user).update(
            quota_bytes=100_000_000,
        )
        make_file(file_size=99_000_000)

        with pytest.raises(QuotaExceededError) as exc_info:
            request_upload('big.bin', 2_000_000, None, user)

        assert exc_info.value.quota_bytes == 100_000_000
        assert exc_info.value.used_bytes == 99_000_000
        assert exc_info.value.required_bytes == 2_000_000
        assert File.objects.count() == 1

        ticket = request_upload('small.bin', 500_000, None, user)

        pending = File.objects.get(id=ticket.file_id)
        assert pending.upload_status == UploadStatus.PENDING
        assert File.objects.count() == 2

    def test_quota_check_uses_reconciled_usage(self, user, mock_s3):
        """A stale cached counter does not block uploads."""
        StorageAccount.objects.filter(user=user).update(
            quota_bytes=1000,
            used_bytes=1000,
        )

        request_upload('a.txt', 500, None, user)

        user.storage_account.refresh_from_db()
        assert user.storage_account.used_bytes == 0


@pytest.mark.django_db
class TestConfirmUpload:
    """Tests for step 2 of the upload flow."""

    def test_confirm_marks_completed(self, user, mock_s3):
        """A stored object completes the record and counts toward usage."""
        ticket = request_upload('notes.txt', 7, None, user)
        mock_s3.put_object(
            Bucket=_BUCKET,
            Key=ticket.object_key,
            Body=b'content',
        )

        file_instance = confirm_upload(ticket.file_id, None, user)

        assert file_instance.upload_status == UploadStatus.COMPLETED
        assert file_instance.upload_progress == 7
        assert file_instance.content_type == 'text/plain'
        user.storage_account.refresh_from_db()
        assert user.storage_account.used_bytes == 7

    def test_confirm_keeps_client_content_type(self, user, mock_s3):
        """A content type reported by the client wins over guessing."""
        ticket = request_upload('photo', 7, None, user)
        mock_s3.put_object(
            Bucket=_BUCKET,
            Key=ticket.object_key,
            Body=b'content',
        )

        file_instance = confirm_upload(ticket.file_id, 'image/png', user)

        assert file_instance.content_type == 'image/png'

    def test_confirm_missing_object_discards_record(self, user, mock_s3):
        """Without an object the PENDING record is deleted."""
        ticket = request_upload('ghost.txt', 7, None, user)

        with pytest.raises(UpstreamStorageError):
            confirm_upload(ticket.file_id, None, user)

        with pytest.raises(NotFoundError):
            get_file(ticket.file_id, user)

    def test_confirm_missing_object_reconciles_usage(
        self,
        user,
        mock_s3,
        make_file,
    ):
        """A vanished object of a completed file frees its usage."""
        kept = make_file(file_size=40)
        vanished = make_file(file_size=60)
        StorageAccount.objects.filter(user=user).update(used_bytes=100)

        with pytest.raises(UpstreamStorageError):
            confirm_upload(vanished.id, None, user)

        assert not File.objects.filter(id=vanished.id).exists()
        assert File.objects.filter(id=kept.id).exists()
        user.storage_account.refresh_from_db()
        assert user.storage_account.used_bytes == 40

    def test_confirm_other_users_file(self, user, other_user, mock_s3):
        """Confirming someone else's upload is denied."""
        ticket = request_upload('a.txt', 7, None, user)

        with pytest.raises(AccessDeniedError):
            confirm_upload(ticket.file_id, None, other_user)


@pytest.mark.django_db
class TestFileAccess:
    """Tests for reading single files."""

    def test_get_file_not_found(self, user):
        """Unknown IDs are reported as not found."""
        with pytest.raises(NotFoundError):
            get_file(99999, user)

    def test_get_file_of_other_user(self, user, other_user, make_file):
        """Another user's file is denied."""
        foreign = make_file(owner=other_user)

        with pytest.raises(AccessDeniedError):
            get_file(foreign.id, user)

    def test_file_metadata(self, user, make_file):
        """Metadata is serialized with camelCase keys."""
        docs = create_folder('Documents', None, user)
        file_instance = make_file(
            file_name='a.txt',
            folder=docs,
            file_size=2048,
        )

        metadata = get_file_metadata(file_instance.id, user)

        assert metadata['fileName'] == 'a.txt'
        assert metadata['fileSizeFormatted'] == '2.00 KB'
        assert metadata['folder']['path'] == '/Documents'
        assert 'publicLinkToken' not in metadata

    def test_download_url(self, reader, mock_s3, make_file):
        """Readers get a presigned GET URL for stored objects."""
        file_instance = make_file()
        _put(mock_s3, file_instance)

        ticket = get_download_url(file_instance.id, reader)

        assert ticket.expires_in_minutes == 10
        assert file_instance.object_key in urlparse(ticket.download_url).path

    def test_download_requires_read_permission(self, user, mock_s3, make_file):
        """Accounts without the read flag cannot download."""
        file_instance = make_file()
        _put(mock_s3, file_instance)

        with pytest.raises(PermissionDeniedError):
            get_download_url(file_instance.id, user)

    def test_download_missing_object(self, reader, mock_s3, make_file):
        """No URL is issued for an object that is not stored."""
        file_instance = make_file()

        with pytest.raises(NotFoundError):
            get_download_url(file_instance.id, reader)


@pytest.mark.django_db
class TestDeleteFile:
    """Tests for delete_file."""

    def test_delete_removes_object_and_record(self, user, mock_s3, make_file):
        """The object and the record are removed and usage drops."""
        file_instance = make_file(file_size=300)
        make_file(file_size=100)
        _put(mock_s3, file_instance)

        delete_file(file_instance.id, user)

        assert not File.objects.filter(id=file_instance.id).exists()
        listing = mock_s3.list_objects_v2(Bucket=_BUCKET)
        assert listing.get('KeyCount', 0) == 0
        user.storage_account.refresh_from_db()
        assert user.storage_account.used_bytes == 100

    def test_storage_failure_keeps_record(
        self,
        user,
        mock_s3,
        make_file,
        monkeypatch,
    ):
        """If the object delete fails the record stays."""
        file_instance = make_file()

        def failing_delete(storage, object_key):
            raise UpstreamStorageError('Object storage request failed')

        monkeypatch.setattr(FileStorage, 'delete_object', failing_delete)

        with pytest.raises(UpstreamStorageError):
            delete_file(file_instance.id, user)

        assert File.objects.filter(id=file_instance.id).exists()

    def test_delete_other_users_file(self, user, other_user, make_file):
        """Deleting another user's file is denied."""
        foreign = make_file(owner=other_user)

        with pytest.raises(AccessDeniedError):
            delete_file(foreign.id, user)

        assert File.objects.filter(id=foreign.id).exists()


@pytest.mark.django_db
class TestListFiles:
    """Tests for listing and searching."""

    def test_list_root_files_newest_first(self, user, other_user, make_file):
        """Root listing holds only root files of the caller."""
        docs = create_folder('Documents', None, user)
        first = make_file(file_name='first.txt')
        second = make_file(file_name='second.txt')
        make_file(file_name='nested.txt', folder=docs)
        make_file(file_name='deleted.txt', is_deleted=True)
        make_file(owner=other_user)

        page = list_files(user)

        assert [item.id for item in page.items] == [second.id, first.id]
        assert page.total_items == 2
        assert page.total_pages == 1
        assert not page.has_next

    def test_list_folder_pagination(self, user, make_file):
        """Pages slice the folder listing."""
        docs = create_folder('Documents', None, user)
        for index in range(5):
            make_file(file_name=f'{index}.txt', folder=docs)

        first_page = list_files(user, docs.id, page=0, size=2)
        last_page = list_files(user, docs.id, page=2, size=2)

        assert len(first_page.items) == 2
        assert first_page.total_pages == 3
        assert first_page.has_next
        assert not first_page.has_previous
        assert len(last_page.items) == 1
        assert last_page.has_previous
        assert not last_page.has_next

    def test_invalid_page(self, user):
        """Negative pages and empty sizes are rejected."""
        with pytest.raises(InvalidInputError):
            list_files(user, page=-1)
        with pytest.raises(InvalidInputError):
            list_files(user, size=0)

    def test_list_all_files_batches(self, user, make_file, settings):
        """Select-all walks every page."""
        settings.DRIVE_LIST_ALL_BATCH_SIZE = 2
        for index in range(5):
            make_file(file_name=f'{index}.txt')

        all_files = list_all_files(user)

        assert len(all_files) == 5
        assert len({item.id for item in all_files}) == 5

    def test_list_all_files_spans_folders(self, user, other_user, make_file):
        """Without a folder every active file of the user is returned."""
        docs = create_folder('Documents', None, user)
        root_file = make_file(file_name='root.txt')
        nested_file = make_file(file_name='nested.txt', folder=docs)
        make_file(file_name='trashed.txt', is_deleted=True)
        make_file(file_name='foreign.txt', owner=other_user)

        everything = list_all_files(user)
        in_docs = list_all_files(user, docs.id)

        assert {item.id for item in everything} == {
            root_file.id,
            nested_file.id,
        }
        assert [item.id for item in in_docs] == [nested_file.id]

    def test_search_files(self, user, other_user, make_file):
        """Search is case-insensitive and owner-scoped."""
        docs = create_folder('Documents', None, user)
        make_file(file_name='Report.pdf')
        make_file(file_name='annual-report.txt', folder=docs)
        make_file(file_name='photo.jpg')
        make_file(file_name='report.doc', owner=other_user)

        page = search_files(user, 'REPORT')

        assert {item.file_name for item in page.items} == {
            'Report.pdf',
            'annual-report.txt',
        }


@pytest.mark.django_db
class TestMoveAndRename:
    """Tests for move_file and rename_file."""

    def test_move_file(self, user, make_file):
        """Files move between folders, the key stays."""
        docs = create_folder('Documents', None, user)
        file_instance = make_file()
        object_key = file_instance.object_key

        moved = move_file(file_instance.id, docs.id, user)

        assert moved.folder == docs
        assert moved.object_key == object_key

    def test_move_file_to_root(self, user, make_file):
        """A None target moves the file to the root."""
        docs = create_folder('Documents', None, user)
        file_instance = make_file(folder=docs)

        moved = move_file(file_instance.id, None, user)

        assert moved.folder is None

    def test_move_into_foreign_folder(self, user, other_user, make_file):
        """The target folder must belong to the caller."""
        foreign = create_folder('Private', None, other_user)
        file_instance = make_file()

        with pytest.raises(AccessDeniedError):
            move_file(file_instance.id, foreign.id, user)

    def test_rename_file(self, user, make_file):
        """Renaming changes only the display name."""
        file_instance = make_file(file_name='old.txt')

        renamed = rename_file(file_instance.id, '  new.txt ', user)

        assert renamed.file_name == 'new.txt'
        assert renamed.original_name == 'old.txt'

    def test_rename_file_blank(self, user, make_file):
        """Blank names are rejected."""
        file_instance = make_file()

        with pytest.raises(InvalidInputError):
            rename_file(file_instance.id, ' ', user)


@pytest.mark.django_db
class TestBulkOperations:
    """Tests for bulk delete and move."""

    def test_bulk_delete_skips_foreign_ids(
        self,
        user,
        other_user,
        mock_s3,
        make_file,
    ):
        """One owned and one foreign id delete exactly one file."""
        mine = make_file()
        foreign = make_file(owner=other_user)
        _put(mock_s3, mine)

        result = bulk_delete_files([mine.id, foreign.id], user)

        assert result.count == 1
        assert result.succeeded == [mine.id]
        assert result.failed == {}
        assert not File.objects.filter(id=mine.id).exists()
        assert File.objects.filter(id=foreign.id).exists()

    def test_bulk_delete_strict(self, user, other_user, mock_s3, make_file):
        """Strict mode refuses foreign ids up front."""
        mine = make_file()
        foreign = make_file(owner=other_user)

        with pytest.raises(AccessDeniedError):
            bulk_delete_files([mine.id, foreign.id], user, strict=True)

        assert File.objects.filter(id=mine.id).exists()

    def test_bulk_delete_reports_failures(
        self,
        user,
        mock_s3,
        make_file,
        monkeypatch,
    ):
        """A failing item is reported while the others are deleted."""
        broken = make_file(file_name='broken.txt')
        fine = make_file(file_name='fine.txt')
        original_delete = FileStorage.delete_object

        def flaky_delete(storage, object_key):
            if object_key == broken.object_key:
                raise UpstreamStorageError('Object storage request failed')
            original_delete(storage, object_key)

        monkeypatch.setattr(FileStorage, 'delete_object', flaky_delete)

        result = bulk_delete_files([broken.id, fine.id], user)

        assert result.succeeded == [fine.id]
        assert list(result.failed) == [broken.id]
        assert File.objects.filter(id=broken.id).exists()
        assert result.to_dict()['count'] == 1

    def test_bulk_delete_updates_usage(self, user, mock_s3, make_file):
        """Usage is reconciled after a bulk delete."""
        first = make_file(file_size=100)
        second = make_file(file_size=200)
        make_file(file_size=300)

        bulk_delete_files([first.id, second.id], user)

        user.storage_account.refresh_from_db()
        assert user.storage_account.used_bytes == 300

    def test_bulk_move(self, user, other_user, make_file):
        """Owned files move, foreign ones are left alone."""
        docs = create_folder('Documents', None, user)
        mine = make_file()
        foreign = make_file(owner=other_user)

        result = bulk_move_files([mine.id, foreign.id], docs.id, user)

        assert result.count == 1
        mine.refresh_from_db()
        foreign.refresh_from_db()
        assert mine.folder == docs
        assert foreign.folder is None


@pytest.mark.django_db
def test_storage_info(user, make_file):
    """Storage info reports reconciled usage."""
    StorageAccount.objects.filter(user=user).update(
        quota_bytes=4096,
        used_bytes=1,
    )
    make_file(file_size=1024)
    make_file(file_size=500, upload_status=UploadStatus.PENDING)

    usage = get_storage_info(user)

    assert usage.used_bytes == 1024
    assert usage.remaining_bytes == 3072
    assert usage.usage_percentage == 25.0
    payload = usage.to_dict()
    assert payload['storageUsedFormatted'] == '1.00 KB'
    assert payload['usagePercentage'] == '25.00'
