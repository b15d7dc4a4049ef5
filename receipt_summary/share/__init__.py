"""Remote file share base class and factory."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ..models import RemoteFile

if TYPE_CHECKING:
    from ..config import AppConfig


class FileShare(ABC):
    """Abstract access to the receipt folder, the ledger and the sync state.

    Every method raises :class:`~receipt_summary.errors.TransportError` when
    the share cannot be reached or refuses the request.
    """

    @abstractmethod
    async def list_files(self) -> list[RemoteFile]:
        """List the receipt files currently on the share."""
        ...

    @abstractmethod
    async def fetch(self, name: str) -> bytes:
        """Download one receipt file."""
        ...

    @abstractmethod
    async def read_ledger(self) -> str:
        """Return the persisted ledger text, ``""`` if there is none yet."""
        ...

    @abstractmethod
    async def write_ledger(self, text: str) -> None:
        ...

    @abstractmethod
    async def read_state(self) -> str:
        """Return the persisted processed-file blob, ``""`` if there is none yet."""
        ...

    @abstractmethod
    async def write_state(self, text: str) -> None:
        ...

    async def aclose(self) -> None:
        """Release network resources held by the share."""


def create_share(config: AppConfig) -> FileShare:
    """Create a file share backend based on configuration."""
    backend_name = config.share.backend

    match backend_name:
        case "webdav":
            from .webdav import WebDAVShare

            cfg = config.share.webdav
            return WebDAVShare(
                root_url=cfg.root_url,
                share_id=cfg.share_id,
                share_password=cfg.share_password,
                ledger_id=cfg.ledger_id,
                ledger_password=cfg.ledger_password,
                state_id=cfg.state_id,
                state_password=cfg.state_password,
                timeout=cfg.timeout,
                list_timeout=cfg.list_timeout,
            )
        case "gdrive":
            from .gdrive import GoogleDriveShare

            cfg = config.share.gdrive
            return GoogleDriveShare(
                credentials_path=cfg.credentials_path,
                token_path=cfg.token_path,
                folder_id=cfg.folder_id,
                ledger_file_id=cfg.ledger_file_id,
                state_file_id=cfg.state_file_id,
            )
        case _:
            raise ValueError(
                f"Unknown share backend: {backend_name!r} (choose webdav or gdrive)"
            )
