"""Tests for the Google Drive share (mocked Drive service)."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from googleapiclient.errors import HttpError

from receipt_summary.config import load_config
from receipt_summary.errors import TransportError
from receipt_summary.share import create_share
from receipt_summary.share.gdrive import GoogleDriveShare


def _share(service: MagicMock) -> GoogleDriveShare:
    share = GoogleDriveShare(
        folder_id="folder123",
        ledger_file_id="ledger456",
        state_file_id="state789",
    )
    share._service = service
    return share


def _fake_download(data: bytes):
    def make(buffer, request):
        downloader = MagicMock()

        def next_chunk():
            buffer.write(data)
            return None, True

        downloader.next_chunk.side_effect = next_chunk
        return downloader

    return patch("googleapiclient.http.MediaIoBaseDownload", side_effect=make)


class TestGoogleDriveShare:
    def test_init_defaults(self):
        """Initializes with default paths."""
        share = GoogleDriveShare()
        assert "gdrive_credentials.json" in str(share._credentials_path)
        assert "gdrive_token.json" in str(share._token_path)
        assert share._folder_id == ""

    def test_missing_credentials_file(self, tmp_path):
        """Raises FileNotFoundError when credentials file doesn't exist."""
        share = GoogleDriveShare(
            credentials_path=str(tmp_path / "nonexistent.json"),
            token_path=str(tmp_path / "token.json"),
        )
        with pytest.raises(FileNotFoundError, match="OAuth credentials"):
            share._get_service()

    @pytest.mark.asyncio
    async def test_list_files_pages(self):
        service = MagicMock()
        service.files.return_value.list.return_value.execute.side_effect = [
            {
                "files": [
                    {
                        "id": "f1",
                        "name": "b.pdf",
                        "md5Checksum": "md5-b",
                        "modifiedTime": "2024-09-28T11:58:34.000Z",
                        "mimeType": "application/pdf",
                    }
                ],
                "nextPageToken": "page2",
            },
            {
                "files": [
                    {
                        "id": "f2",
                        "name": "a.csv",
                        "version": "7",
                        "modifiedTime": "2024-09-28T11:58:23.000Z",
                        "mimeType": "text/csv",
                    }
                ],
            },
        ]

        files = await _share(service).list_files()

        assert [f.name for f in files] == ["a.csv", "b.pdf"]
        assert files[0].fingerprint == "f2@7"
        assert files[1].fingerprint == "md5-b"
        assert files[1].last_modified == datetime(
            2024, 9, 28, 11, 58, 34, tzinfo=timezone.utc
        )
        assert files[0].content_type == "text/csv"

    @pytest.mark.asyncio
    async def test_fetch(self):
        service = MagicMock()
        service.files.return_value.list.return_value.execute.return_value = {
            "files": [{"id": "f1"}]
        }

        with _fake_download(b"%PDF-1.4"):
            content = await _share(service).fetch("b.pdf")

        assert content == b"%PDF-1.4"
        service.files.return_value.get_media.assert_called_once_with(fileId="f1")

    @pytest.mark.asyncio
    async def test_fetch_missing(self):
        service = MagicMock()
        service.files.return_value.list.return_value.execute.return_value = {"files": []}

        with pytest.raises(TransportError) as exc_info:
            await _share(service).fetch("gone.pdf")
        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_read_state(self):
        service = MagicMock()
        with _fake_download(b"abc,def"):
            assert await _share(service).read_state() == "abc,def"
        service.files.return_value.get_media.assert_called_once_with(fileId="state789")

    @pytest.mark.asyncio
    async def test_missing_ledger_and_state_are_empty(self):
        service = MagicMock()
        not_found = HttpError(MagicMock(status=404, reason="Not Found"), b"not found")
        service.files.return_value.get_media.side_effect = not_found

        share = _share(service)
        with _fake_download(b""):
            assert await share.read_ledger() == ""
            assert await share.read_state() == ""

    @pytest.mark.asyncio
    async def test_unconfigured_ledger_and_state_are_empty(self):
        service = MagicMock()
        share = GoogleDriveShare(folder_id="folder123")
        share._service = service

        assert await share.read_ledger() == ""
        assert await share.read_state() == ""
        service.files.return_value.get_media.assert_not_called()

    @pytest.mark.asyncio
    async def test_read_state_other_errors_propagate(self):
        service = MagicMock()
        service.files.return_value.get_media.side_effect = HttpError(
            MagicMock(status=500, reason="Backend Error"), b"oops"
        )

        with _fake_download(b""):
            with pytest.raises(TransportError) as exc_info:
                await _share(service).read_state()
        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_write_without_file_id(self):
        share = GoogleDriveShare(folder_id="folder123")
        share._service = MagicMock()
        with pytest.raises(TransportError, match="No Google Drive file id"):
            await share.write_state("abc")

    @pytest.mark.asyncio
    async def test_write_ledger(self):
        service = MagicMock()
        with patch("googleapiclient.http.MediaIoBaseUpload") as upload:
            await _share(service).write_ledger("Artikelbezeichnung")

        assert upload.call_args.kwargs["mimetype"] == "text/plain"
        update = service.files.return_value.update
        assert update.call_args.kwargs["fileId"] == "ledger456"
        update.return_value.execute.assert_called_once()

    @pytest.mark.asyncio
    async def test_http_error_wrapped(self):
        service = MagicMock()
        resp = MagicMock(status=403, reason="Forbidden")
        service.files.return_value.list.return_value.execute.side_effect = HttpError(
            resp, b"forbidden"
        )

        with pytest.raises(TransportError, match="Google Drive listing failed"):
            await _share(service).list_files()


def test_create_gdrive_share():
    config = load_config()
    config.share.backend = "gdrive"
    config.share.gdrive.folder_id = "folder123"
    share = create_share(config)
    assert isinstance(share, GoogleDriveShare)
    assert share._folder_id == "folder123"
