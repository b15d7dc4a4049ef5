"""Nextcloud public-share WebDAV backend.

Each of the receipt folder, the ledger file and the state file is a separate
public share, addressed by its share id and protected by its own password.
The server's IP may need to be excluded from Nextcloud's brute-force
protection:
https://docs.nextcloud.com/server/latest/admin_manual/configuration_server/bruteforce_configuration.html
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from email.utils import parsedate_to_datetime
from urllib.parse import quote, unquote

import httpx

from ..errors import TransportError
from ..models import RemoteFile
from . import FileShare

logger = logging.getLogger(__name__)

_DAV = "{DAV:}"

_PROPFIND_BODY = """<?xml version="1.0"?>
<d:propfind xmlns:d="DAV:">
  <d:prop>
    <d:getlastmodified/>
    <d:getetag/>
    <d:getcontenttype/>
    <d:resourcetype/>
    <d:quota-used-bytes/>
  </d:prop>
</d:propfind>
"""


def parse_multistatus(xml: str) -> list[RemoteFile]:
    """Extract the files of a PROPFIND multistatus answer.

    Collections (the shared folder itself and sub folders) are skipped.
    """
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as e:
        raise TransportError(f"Unreadable PROPFIND answer: {e}") from e

    files: list[RemoteFile] = []
    for response in root.iter(f"{_DAV}response"):
        href = response.findtext(f"{_DAV}href", default="")
        for prop in response.iter(f"{_DAV}prop"):
            if prop.find(f"{_DAV}quota-used-bytes") is not None:
                continue
            if prop.find(f"{_DAV}resourcetype/{_DAV}collection") is not None:
                continue
            etag = prop.findtext(f"{_DAV}getetag")
            modified = prop.findtext(f"{_DAV}getlastmodified")
            if not etag or not modified:
                continue
            files.append(
                RemoteFile(
                    name=unquote(href.rstrip("/").rsplit("/", 1)[-1]),
                    fingerprint=etag.replace('"', ""),
                    last_modified=parsedate_to_datetime(modified),
                    content_type=prop.findtext(f"{_DAV}getcontenttype"),
                )
            )
    return files


class WebDAVShare(FileShare):
    """Read and write receipts, ledger and state through Nextcloud WebDAV."""

    def __init__(
        self,
        root_url: str = "https://ideadapt.net/nextcloud",
        share_id: str = "",
        share_password: str = "",
        ledger_id: str = "",
        ledger_password: str = "",
        state_id: str = "",
        state_password: str = "",
        timeout: float = 20.0,
        list_timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._root = root_url.rstrip("/")
        self._share = (share_id, share_password)
        self._ledger = (ledger_id, ledger_password)
        self._state = (state_id, state_password)
        self._timeout = timeout
        self._list_timeout = list_timeout
        self._client = client or httpx.AsyncClient(
            transport=httpx.AsyncHTTPTransport(retries=1),
            timeout=timeout,
        )

    def _url(self, share_id: str, name: str = "") -> str:
        url = f"{self._root}/public.php/dav/files/{share_id}"
        if name:
            url += "/" + quote(name)
        return url

    async def _request(
        self,
        method: str,
        share: tuple[str, str],
        name: str = "",
        timeout: float | None = None,
        missing_ok: bool = False,
        **kwargs,
    ) -> httpx.Response | None:
        share_id, password = share
        url = self._url(share_id, name)
        try:
            resp = await self._client.request(
                method,
                url,
                auth=("anonymous", password),
                timeout=timeout or self._timeout,
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if missing_ok and resp.status_code == 404:
            return None
        if not resp.is_success:
            raise TransportError(
                f"{method} {url} failed. status: {resp.status_code}, "
                f"body: {resp.text[:1000]}",
                status=resp.status_code,
            )
        return resp

    async def list_files(self) -> list[RemoteFile]:
        logger.info("getting files")
        resp = await self._request(
            "PROPFIND",
            self._share,
            timeout=self._list_timeout,
            headers={"Depth": "1", "Content-Type": "application/xml"},
            content=_PROPFIND_BODY,
        )
        files = parse_multistatus(resp.text)
        logger.info("getting files: found %d files", len(files))
        return sorted(files, key=lambda f: f.last_modified)

    async def fetch(self, name: str) -> bytes:
        logger.info("getting file %s", name)
        resp = await self._request("GET", self._share, name=name)
        logger.info("found file %s, size: %d bytes", name, len(resp.content))
        return resp.content

    async def read_ledger(self) -> str:
        logger.info("getting ledger")
        resp = await self._request("GET", self._ledger, missing_ok=True)
        if resp is None:
            logger.info("no ledger yet")
            return ""
        return resp.content.decode("utf-8")

    async def write_ledger(self, text: str) -> None:
        logger.info("storing ledger ...%s", text[-50:])
        await self._request("PUT", self._ledger, content=text.encode("utf-8"))
        logger.info("stored ledger")

    async def read_state(self) -> str:
        logger.info("getting state")
        resp = await self._request("GET", self._state, missing_ok=True)
        if resp is None:
            logger.info("no state yet")
            return ""
        return resp.content.decode("utf-8")

    async def write_state(self, text: str) -> None:
        logger.info("storing state %s...", text[:50])
        await self._request("PUT", self._state, content=text.encode("utf-8"))
        logger.info("stored state")

    async def aclose(self) -> None:
        await self._client.aclose()
