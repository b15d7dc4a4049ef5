"""Google Drive file share via OAuth 2.0."""

from __future__ import annotations

import asyncio
import io
import logging
from datetime import datetime
from pathlib import Path

from ..errors import TransportError
from ..models import RemoteFile
from . import FileShare

logger = logging.getLogger(__name__)

_FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
_TEXT_MIME_TYPE = "text/plain"


class GoogleDriveShare(FileShare):
    """Use a Google Drive folder as receipt inbox and two Drive files as
    ledger and state.

    On first use, opens a browser for Google account authorization.
    The token is saved for subsequent use. The Drive client is synchronous,
    so every call runs in a worker thread.
    """

    SCOPES = ["https://www.googleapis.com/auth/drive"]

    def __init__(
        self,
        credentials_path: str | Path = "~/.config/receipt-summary/gdrive_credentials.json",
        token_path: str | Path = "~/.config/receipt-summary/gdrive_token.json",
        folder_id: str = "",
        ledger_file_id: str = "",
        state_file_id: str = "",
    ) -> None:
        self._credentials_path = Path(credentials_path).expanduser()
        self._token_path = Path(token_path).expanduser()
        self._folder_id = folder_id
        self._ledger_file_id = ledger_file_id
        self._state_file_id = state_file_id
        self._service = None

    def _get_service(self):
        """Build and return the Drive API service, authenticating if needed."""
        if self._service is not None:
            return self._service

        try:
            from google.auth.transport.requests import Request
            from google.oauth2.credentials import Credentials
            from google_auth_oauthlib.flow import InstalledAppFlow
            from googleapiclient.discovery import build
        except ImportError:
            raise ImportError(
                "Google Drive support needs extra packages:\n"
                "  pip install google-api-python-client google-auth-oauthlib"
            )

        creds = None

        # Load saved token
        if self._token_path.exists():
            creds = Credentials.from_authorized_user_file(
                str(self._token_path), self.SCOPES
            )

        # Refresh or get new credentials
        if creds is None or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                creds.refresh(Request())
            else:
                if not self._credentials_path.exists():
                    raise FileNotFoundError(
                        f"OAuth credentials file not found: "
                        f"{self._credentials_path}\n"
                        f"Download it from the Google Cloud Console."
                    )
                flow = InstalledAppFlow.from_client_secrets_file(
                    str(self._credentials_path), self.SCOPES
                )
                creds = flow.run_local_server(port=0)

            # Save token for next time
            self._token_path.parent.mkdir(parents=True, exist_ok=True)
            self._token_path.write_text(creds.to_json())

        self._service = build("drive", "v3", credentials=creds)
        return self._service

    async def _call(self, what: str, fn, *args):
        from googleapiclient.errors import HttpError

        try:
            return await asyncio.to_thread(fn, *args)
        except HttpError as e:
            raise TransportError(
                f"Google Drive {what} failed: {e}", status=e.resp.status
            ) from e

    def _list(self) -> list[RemoteFile]:
        service = self._get_service()
        query = (
            f"'{self._folder_id}' in parents and trashed = false "
            f"and mimeType != '{_FOLDER_MIME_TYPE}'"
        )
        files: list[RemoteFile] = []
        page_token = None
        while True:
            result = (
                service.files()
                .list(
                    q=query,
                    fields="nextPageToken, files(id, name, md5Checksum, version, modifiedTime, mimeType)",
                    pageToken=page_token,
                )
                .execute()
            )
            for f in result.get("files", []):
                files.append(
                    RemoteFile(
                        name=f["name"],
                        fingerprint=f.get("md5Checksum") or f"{f['id']}@{f.get('version', '')}",
                        last_modified=datetime.fromisoformat(
                            f["modifiedTime"].replace("Z", "+00:00")
                        ),
                        content_type=f.get("mimeType"),
                    )
                )
            page_token = result.get("nextPageToken")
            if not page_token:
                return files

    def _find_file_id(self, name: str) -> str:
        service = self._get_service()
        escaped = name.replace("\\", "\\\\").replace("'", "\\'")
        result = (
            service.files()
            .list(
                q=f"'{self._folder_id}' in parents and name = '{escaped}' and trashed = false",
                fields="files(id)",
            )
            .execute()
        )
        found = result.get("files", [])
        if not found:
            raise TransportError(f"File not found in Drive folder: {name}", status=404)
        return found[0]["id"]

    def _download(self, file_id: str) -> bytes:
        from googleapiclient.http import MediaIoBaseDownload

        service = self._get_service()
        buffer = io.BytesIO()
        downloader = MediaIoBaseDownload(buffer, service.files().get_media(fileId=file_id))
        done = False
        while not done:
            _status, done = downloader.next_chunk()
        return buffer.getvalue()

    def _upload_text(self, file_id: str, text: str) -> None:
        from googleapiclient.http import MediaIoBaseUpload

        if not file_id:
            raise TransportError("No Google Drive file id configured for upload")

        service = self._get_service()
        media = MediaIoBaseUpload(
            io.BytesIO(text.encode("utf-8")), mimetype=_TEXT_MIME_TYPE
        )
        service.files().update(fileId=file_id, media_body=media).execute()

    async def list_files(self) -> list[RemoteFile]:
        logger.info("getting files")
        files = await self._call("listing", self._list)
        logger.info("getting files: found %d files", len(files))
        return sorted(files, key=lambda f: f.last_modified)

    async def fetch(self, name: str) -> bytes:
        logger.info("getting file %s", name)
        file_id = await self._call("lookup", self._find_file_id, name)
        return await self._call("download", self._download, file_id)

    async def _read_text(self, file_id: str, what: str) -> str:
        """Download a text file; a missing file reads as empty."""
        if not file_id:
            logger.info("no %s file configured", what)
            return ""
        try:
            content = await self._call("download", self._download, file_id)
        except TransportError as e:
            if e.status == 404:
                logger.info("no %s yet", what)
                return ""
            raise
        return content.decode("utf-8")

    async def read_ledger(self) -> str:
        logger.info("getting ledger")
        return await self._read_text(self._ledger_file_id, "ledger")

    async def write_ledger(self, text: str) -> None:
        logger.info("storing ledger ...%s", text[-50:])
        await self._call("upload", self._upload_text, self._ledger_file_id, text)

    async def read_state(self) -> str:
        logger.info("getting state")
        return await self._read_text(self._state_file_id, "state")

    async def write_state(self, text: str) -> None:
        logger.info("storing state %s...", text[:50])
        await self._call("upload", self._upload_text, self._state_file_id, text)
