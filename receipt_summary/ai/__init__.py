"""Receipt extraction / categorization backend base class, helpers and factory."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

from ..errors import ExtractionTimeout, ParseError
from ..models import LineItem

if TYPE_CHECKING:
    from ..config import AppConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXTRACTION_PROMPT = """\
You can read tabular data from a german shopping receipt and output this data in proper CSV format.
You never include anything but the raw CSV rows. You omit the surrounding markdown code blocks.
Make sure you never remove the header row containing the column titles.
The columns in the receipt are Artikelbezeichnung, Menge, Preis, Total.
Add an extra column at the end called 'Datetime' that contains the literal date and time value found in the receipt (do not change the date format). The receipt date and time value is the same for every shopping item.
Add another extra column at the end called 'Seller' that contains the name of the receipt issuer (e.g. store name). The seller value is the same for every shopping item.
If the seller name contains one of: 'Migros', 'Coop', 'Aldi', 'Lidl', use that short form.
Never use a comma inside a value.
"""

CATEGORIZATION_PROMPT = """\
You can categorize shopping items based on their german article name into one of the following categories:
Frucht, Gemüse, Milchprodukt, Käse, Eier, Öl, Süssigkeit, Getränk, Alkohol, Fleisch, Fleischersatz, Gebäck.
You may use other suitable category names if none of the suggested categories match.
If you can not figure out a good category, think about a suitable category name again.
If you still can't figure it out your last resort is to use a hyphen "-" symbol.
Each line in the input has the following format (using placeholder names in < and >): <technical-prefix>,<article-name>
Where neither <technical-prefix> nor <article-name> can contain a comma. So the comma is the column delimiter.
To process the user input, do the following for each and every line: Output the exact input line again and just append the category name after a comma.
Make sure, that you do not skip any line!
Omit introduction sentences or the like.
"""


class ReceiptAI(ABC):
    """Abstract base for the extraction and categorization collaborator."""

    @abstractmethod
    async def extract_line_items(
        self, content: bytes, filename: str
    ) -> list[LineItem]:
        """Extract the shopping lines of one receipt file.

        Returned items have no category yet.
        """
        ...

    @abstractmethod
    async def categorize_batch(self, lines: list[str]) -> list[str]:
        """Categorize ``"<id>,<name>"`` lines.

        Answers are ``"<id>,<name>,<category>"`` lines in no particular order;
        lines may be missing or malformed.
        """
        ...


def strip_code_fences(text: str) -> str:
    """Remove surrounding markdown code fences from a model answer."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return cleaned


def parse_extraction_csv(text: str) -> list[LineItem]:
    """Turn the model's CSV answer into uncategorized line items.

    The first row is the header. Each data row lacks the category column,
    so an empty one is appended before parsing. Rows that still do not fit
    are logged and skipped.
    """
    rows = [r for r in strip_code_fences(text).splitlines() if r.strip()]
    items: list[LineItem] = []
    skipped = 0
    for row in rows[1:]:
        try:
            items.append(LineItem.parse(row.rstrip() + ","))
        except ParseError as e:
            skipped += 1
            logger.warning("Skipping extracted row: %s", e)
    if skipped:
        logger.warning("Skipped %d of %d extracted rows", skipped, len(rows) - 1)
    return items


async def poll_until(
    check: Callable[[], Awaitable[T | None]],
    interval: float = 1.5,
    timeout: float = 120.0,
    what: str = "job",
) -> T:
    """Call ``check`` every ``interval`` seconds until it returns a value.

    Raises:
        ExtractionTimeout: If no value arrived within ``timeout`` seconds.
    """
    deadline = time.monotonic() + timeout
    while True:
        result = await check()
        if result is not None:
            return result
        if time.monotonic() + interval > deadline:
            raise ExtractionTimeout(f"{what} not finished after {timeout:.0f}s")
        await asyncio.sleep(interval)


def create_ai(config: AppConfig) -> ReceiptAI:
    """Create an extraction/categorization backend based on configuration."""
    backend_name = config.ai.backend

    match backend_name:
        case "claude":
            from .claude import ClaudeReceiptAI

            return ClaudeReceiptAI(
                api_key=config.ai.claude.api_key,
                model=config.ai.claude.model,
            )
        case "gemini":
            from .gemini import GeminiReceiptAI

            return GeminiReceiptAI(
                api_key=config.ai.gemini.api_key,
                model=config.ai.gemini.model,
                poll_interval=config.ai.gemini.poll_interval,
                max_wait=config.ai.gemini.max_wait,
            )
        case _:
            raise ValueError(
                f"Unknown AI backend: {backend_name!r} (choose claude or gemini)"
            )
