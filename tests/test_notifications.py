"""Tests for Nextcloud file-created notification parsing."""

import json
from datetime import datetime, timezone

import pytest

from receipt_summary.errors import ParseError
from receipt_summary.notifications import FILE_CREATED_EVENT, parse_file_created


def _event(**node) -> dict:
    values = {
        "id": 4242,
        "internalPath": "/admin/files/Receipts/Receipt_20240718_151446.pdf",
        "modifiedTime": 1727524714,
        "mimeType": "application/pdf",
        "Etag": "df7f3873851715ca368b401e46b75d3e",
    }
    values.update(node)
    return {"eventName": FILE_CREATED_EVENT, "node": values, "user": {"uid": "admin"}}


def test_parse_dict():
    file = parse_file_created(_event())
    assert file.name == "Receipt_20240718_151446.pdf"
    assert file.fingerprint == "df7f3873851715ca368b401e46b75d3e"
    assert file.last_modified == datetime(2024, 9, 28, 11, 58, 34, tzinfo=timezone.utc)
    assert file.content_type == "application/pdf"


def test_parse_json_text():
    file = parse_file_created(json.dumps(_event()))
    assert file.name == "Receipt_20240718_151446.pdf"


def test_parse_json_bytes():
    file = parse_file_created(json.dumps(_event()).encode())
    assert file.fingerprint == "df7f3873851715ca368b401e46b75d3e"


def test_other_event_ignored():
    event = _event()
    event["eventName"] = "\\OCP\\Files::postDelete"
    assert parse_file_created(event) is None


def test_not_json():
    with pytest.raises(ParseError, match="not JSON"):
        parse_file_created("{not json")


@pytest.mark.parametrize("missing", ["internalPath", "Etag", "modifiedTime"])
def test_incomplete_node(missing):
    event = _event()
    del event["node"][missing]
    with pytest.raises(ParseError, match="Incomplete"):
        parse_file_created(event)


def test_missing_node():
    with pytest.raises(ParseError):
        parse_file_created({"eventName": FILE_CREATED_EVENT})


def test_lowercase_etag():
    event = _event()
    event["node"]["etag"] = event["node"].pop("Etag")
    assert parse_file_created(event).fingerprint == "df7f3873851715ca368b401e46b75d3e"
