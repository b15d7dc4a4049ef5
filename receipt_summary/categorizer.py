"""Batched categorization of line items with retry and sentinel fallback."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .ai import ReceiptAI
from .models import DELIMITER, LineItem

logger = logging.getLogger(__name__)

BATCH_SIZE = 50
MAX_ATTEMPTS = 2
SENTINEL_CATEGORY = "-"


def parse_category_line(line: str) -> tuple[str, str] | None:
    """Parse an ``"<id>,<name>,<category>"`` answer line.

    Returns ``(id, category)``, or ``None`` if the line does not have exactly
    that shape or the category is empty.
    """
    parts = [p.strip() for p in line.split(DELIMITER)]
    if len(parts) != 3:
        return None
    join_id, _name, category = parts
    if not join_id or not category:
        return None
    return join_id, category


class Categorizer:
    """Assigns categories through the categorization collaborator.

    Items are sent in fixed-size batches keyed by :attr:`LineItem.join_id`.
    A batch whose answers do not cover every id is asked again, up to
    ``max_attempts`` times in total; the last attempt is applied and items
    still without an answer get ``sentinel``. Collaborator failures are logged
    and handled like an empty answer, so this never raises for them.
    """

    def __init__(
        self,
        ai: ReceiptAI,
        batch_size: int = BATCH_SIZE,
        max_attempts: int = MAX_ATTEMPTS,
        sentinel: str = SENTINEL_CATEGORY,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._ai = ai
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._sentinel = sentinel

    async def categorize(self, items: Sequence[LineItem]) -> list[LineItem]:
        """Return ``items`` in the same order, each with a non-empty category."""
        result: list[LineItem] = []
        for start in range(0, len(items), self._batch_size):
            batch = items[start:start + self._batch_size]
            categories = await self._categorize_batch(batch)
            result.extend(
                item.with_category(categories.get(item.join_id, self._sentinel))
                for item in batch
            )
        return result

    async def _categorize_batch(self, batch: Sequence[LineItem]) -> dict[str, str]:
        expected = {item.join_id for item in batch}
        request = [f"{item.join_id}{DELIMITER}{item.article_name}" for item in batch]

        categories: dict[str, str] = {}
        for attempt in range(1, self._max_attempts + 1):
            categories = await self._ask(request, expected)
            if len(categories) == len(expected):
                break
            logger.warning(
                "categorization attempt %d/%d matched %d of %d items",
                attempt,
                self._max_attempts,
                len(categories),
                len(expected),
            )

        missing = len(expected) - len(categories)
        if missing:
            logger.warning(
                "%d items fall back to category %r", missing, self._sentinel
            )
        return categories

    async def _ask(self, request: list[str], expected: set[str]) -> dict[str, str]:
        try:
            answer = list(await self._ai.categorize_batch(request) or [])
        except Exception:
            logger.exception("categorization of %d items failed", len(request))
            return {}

        categories: dict[str, str] = {}
        discarded = 0
        for line in answer:
            parsed = parse_category_line(line)
            if parsed is None or parsed[0] not in expected:
                discarded += 1
                logger.debug("discarding categorization line %r", line)
                continue
            categories.setdefault(*parsed)
        if discarded:
            logger.warning(
                "discarded %d of %d categorization lines", discarded, len(answer)
            )
        return categories
