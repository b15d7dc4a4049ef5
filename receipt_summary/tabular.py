"""Parser for the Migros purchase export (semicolon separated CSV)."""

from __future__ import annotations

import csv
import io
import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .datetimes import normalize_datetime
from .errors import ParseError
from .models import LineItem

logger = logging.getLogger(__name__)

SELLER = "Migros"

# Datum;Zeit;Filiale;Kassennummer;Transaktionsnummer;Artikel;Menge;Aktion;Umsatz
_COLUMNS = 9
_CENT = Decimal("0.01")

_LOYALTY_BONUS = re.compile(r"cumulus|bonus", re.IGNORECASE)
_RESTAURANT_OUTLET = re.compile(r"^MR\b|restaurant|take ?away", re.IGNORECASE)
_DEPOSIT_OR_BAG = re.compile(r"\bdepot\b|tragtasche|einkaufstasche", re.IGNORECASE)
_ROW_BREAKING = re.compile(r"[,\r\n]")


def _is_loyalty_bonus(store: str, article: str, amount: Decimal) -> bool:
    return bool(_LOYALTY_BONUS.search(article))


def _is_restaurant_sub_entry(store: str, article: str, amount: Decimal) -> bool:
    # Menu components are listed below the menu line with a zero amount.
    return bool(_RESTAURANT_OUTLET.search(store)) and amount == 0


def _is_deposit_or_bag(store: str, article: str, amount: Decimal) -> bool:
    return bool(_DEPOSIT_OR_BAG.search(article))


NOISE_FILTERS = {
    "loyalty bonus": _is_loyalty_bonus,
    "restaurant sub entry": _is_restaurant_sub_entry,
    "deposit or bag": _is_deposit_or_bag,
}


def _text(value: str) -> str:
    """Flatten a cell so it cannot break a ledger row."""
    return " ".join(_ROW_BREAKING.sub(" ", value).split())


def _decimal(value: str, column: str) -> Decimal:
    try:
        return Decimal(value.strip().replace("'", ""))
    except InvalidOperation:
        raise ParseError(f"{column} is not a number: {value!r}") from None


def parse_row(row: list[str]) -> LineItem | None:
    """Convert one export row, or return ``None`` for a noise row.

    Raises:
        ParseError: If the row has the wrong number of columns or a
            quantity/amount that is not a number.
    """
    if len(row) != _COLUMNS:
        raise ParseError(f"expected {_COLUMNS} columns, got {len(row)}: {row!r}")
    day, time, store, _till, _transaction, article, quantity, _discount, amount = (
        c.strip() for c in row
    )
    qty = _decimal(quantity, "Menge")
    total = _decimal(amount, "Umsatz")

    for name, is_noise in NOISE_FILTERS.items():
        if is_noise(store, article, total):
            logger.debug("dropping %s row: %s", name, article)
            return None

    unit_price = (qty * total).quantize(_CENT, rounding=ROUND_HALF_UP)
    return LineItem(
        article_name=_text(article),
        quantity=_text(quantity),
        unit_price=str(unit_price),
        total_price=_text(amount),
        date_time=normalize_datetime(f"{day} {time}"),
        seller=SELLER,
    )


def parse_export(content: bytes) -> list[LineItem]:
    """Parse a whole export file into uncategorized line items.

    Malformed rows are logged and skipped; they do not fail the file.
    """
    text = content.decode("utf-8-sig")
    items: list[LineItem] = []
    for row in csv.reader(io.StringIO(text), delimiter=";"):
        if not any(cell.strip() for cell in row):
            continue
        if row[0].strip().lower() == "datum":
            continue
        try:
            item = parse_row(row)
        except ParseError as e:
            logger.warning("Skipping export row: %s", e)
            continue
        if item is not None:
            items.append(item)
    logger.info("parsed %d line items from export", len(items))
    return items
