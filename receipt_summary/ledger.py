"""Deduplicated ledger of analysed line items and its text format."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from .models import DELIMITER, FIELD_NAMES, LineItem

HEADER = DELIMITER.join(FIELD_NAMES)


class AnalysisLedger:
    """Insertion-ordered collection of line items, unique by identity key.

    When two items share a key the one seen first is kept, so a ledger built
    from ``existing + incoming`` keeps the existing item's fields.
    """

    def __init__(self, items: Iterable[LineItem] = ()) -> None:
        self._items: dict[tuple[str, str, str, str], LineItem] = {}
        for item in items:
            self._items.setdefault(item.key, item)

    @property
    def items(self) -> list[LineItem]:
        return list(self._items.values())

    def __iter__(self) -> Iterator[LineItem]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item: object) -> bool:
        return isinstance(item, LineItem) and item.key in self._items

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AnalysisLedger):
            return NotImplemented
        return self.items == other.items

    def __repr__(self) -> str:
        return f"AnalysisLedger({len(self)} items)"

    def merge(self, other: AnalysisLedger | Iterable[LineItem]) -> AnalysisLedger:
        return merge(self, other)

    def to_text(self) -> str:
        """Serialize as a header line followed by one row per item."""
        return "\n".join([HEADER, *(item.format() for item in self)])

    @classmethod
    def from_text(cls, text: str) -> AnalysisLedger:
        """Parse the persisted ledger.

        An empty blob is the empty ledger. A first line equal to :data:`HEADER` and
        blank lines are skipped; any other malformed row raises :class:`ParseError`
        because the ledger is rewritten in full after every merge.
        """
        items: list[LineItem] = []
        rows = [line for line in text.splitlines() if line.strip()]
        if rows and rows[0].strip() == HEADER:
            rows = rows[1:]
        for line in rows:
            items.append(LineItem.parse(line))
        return cls(items)


def merge(
    existing: AnalysisLedger, incoming: AnalysisLedger | Iterable[LineItem]
) -> AnalysisLedger:
    """Union by identity key; existing items win and keep their position."""
    return AnalysisLedger([*existing, *incoming])
