"""Receipt timestamp normalization."""

from __future__ import annotations

from datetime import datetime

# Tried in order; the first pattern that parses wins.
KNOWN_FORMATS: list[str] = [
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%d.%m.%y %H:%M:%S",
    "%d.%m.%y %H:%M",
    "%d.%m.%Y",
    "%Y-%m-%d",
]


def normalize_datetime(raw: str) -> str:
    """Return ``raw`` in the canonical ``YYYY-MM-DDTHH:MM:SS`` form.

    Receipts and extraction output use a handful of date layouts
    ("14.10.23 10:59", "05.09.2024 12:50:16", ISO). Unrecognized values are
    returned unchanged, so this never raises; such values still work as part of
    an identity key, they just do not collapse with differently formatted
    duplicates.
    """
    if not isinstance(raw, str):
        return raw
    value = raw.strip()
    for fmt in KNOWN_FORMATS:
        try:
            parsed = datetime.strptime(value, fmt)
        except ValueError:
            continue
        return parsed.isoformat(timespec="seconds")
    return raw
