"""Data models for remote receipt files and extracted line items."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from .datetimes import normalize_datetime
from .errors import ParseError

DELIMITER = ","

FIELD_NAMES: tuple[str, ...] = (
    "Artikelbezeichnung",
    "Menge",
    "Preis",
    "Total",
    "Datetime",
    "Seller",
    "Category",
)


@dataclass(frozen=True)
class RemoteFile:
    """A receipt file as listed on the remote share.

    Two files are the same file when their fingerprints match; name,
    timestamp and content type are descriptive only.
    """

    name: str = field(compare=False)
    fingerprint: str
    last_modified: datetime = field(compare=False)
    content_type: str | None = field(default=None, compare=False)


@dataclass(frozen=True)
class LineItem:
    """One shopping line of a receipt."""

    article_name: str
    quantity: str
    unit_price: str
    total_price: str
    date_time: str
    seller: str
    category: str = ""

    @property
    def key(self) -> tuple[str, str, str, str]:
        """Identity of the purchase; quantity and category are not part of it."""
        return (self.article_name, self.total_price, self.date_time, self.seller)

    @property
    def join_id(self) -> str:
        """Stable id used to match categorization answers back to items."""
        return ":".join(self.key)

    def with_category(self, category: str) -> LineItem:
        return replace(self, category=category)

    @classmethod
    def parse(cls, line: str) -> LineItem:
        """Parse one delimited row in :data:`FIELD_NAMES` order.

        Surrounding whitespace of every field is dropped, so a padded row
        formats back to its trimmed form, not to the original text.

        Raises:
            ParseError: If the row does not have exactly 7 fields.
        """
        fields = [f.strip() for f in line.split(DELIMITER)]
        if len(fields) != len(FIELD_NAMES):
            raise ParseError(
                f"expected {len(FIELD_NAMES)} fields, got {len(fields)}: {line!r}"
            )
        name, quantity, unit_price, total_price, date_time, seller, category = fields
        return cls(
            article_name=name,
            quantity=quantity,
            unit_price=unit_price,
            total_price=total_price,
            date_time=normalize_datetime(date_time),
            seller=seller,
            category=category,
        )

    def format(self) -> str:
        return DELIMITER.join(
            (
                self.article_name,
                self.quantity,
                self.unit_price,
                self.total_price,
                self.date_time,
                self.seller,
                self.category,
            )
        )

    def __str__(self) -> str:
        return self.format()
