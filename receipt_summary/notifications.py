"""Parsing of inbound Nextcloud workflow notifications.

Nextcloud's webhook flow posts a JSON event whenever a file is created in
the watched folder; it only triggers a single-file sync.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from .errors import ParseError
from .models import RemoteFile

FILE_CREATED_EVENT = "\\OCP\\Files::postCreate"


def parse_file_created(payload: str | bytes | dict[str, Any]) -> RemoteFile | None:
    """Build the :class:`RemoteFile` announced by a file-created event.

    Returns ``None`` for any other event.

    Raises:
        ParseError: If the payload is not JSON or a file-created event lacks
            the node fields.
    """
    if isinstance(payload, (str, bytes)):
        try:
            event = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ParseError(f"Notification is not JSON: {e}") from e
    else:
        event = payload

    if not isinstance(event, dict) or event.get("eventName") != FILE_CREATED_EVENT:
        return None

    node = event.get("node")
    try:
        internal_path = node["internalPath"]
        etag = node.get("Etag") or node["etag"]
        modified = int(node["modifiedTime"])
    except (TypeError, KeyError, ValueError) as e:
        raise ParseError(f"Incomplete file-created notification: {e!r}") from e

    return RemoteFile(
        name=internal_path.rstrip("/").rsplit("/", 1)[-1],
        fingerprint=etag,
        last_modified=datetime.fromtimestamp(modified, tz=timezone.utc),
        content_type=node.get("mimeType"),
    )
