"""Claude API backend for receipt extraction and categorization."""

from __future__ import annotations

import base64
import logging
import mimetypes

from ..models import LineItem
from . import (
    CATEGORIZATION_PROMPT,
    EXTRACTION_PROMPT,
    ReceiptAI,
    parse_extraction_csv,
    strip_code_fences,
)

logger = logging.getLogger(__name__)


class ClaudeReceiptAI(ReceiptAI):
    """Read receipts and categorize articles with Claude."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "claude-sonnet-4-5-20250929",
        timeout: float = 60.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is not None:
            return self._client

        if not self._api_key:
            raise ValueError(
                "Anthropic API key is not set. "
                "Check the config file or the ANTHROPIC_API_KEY environment variable."
            )

        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        self._client = anthropic.AsyncAnthropic(
            api_key=self._api_key, timeout=self._timeout
        )
        return self._client

    async def extract_line_items(
        self, content: bytes, filename: str
    ) -> list[LineItem]:
        client = self._get_client()
        logger.info("extracting line items from %s", filename)

        media_type = mimetypes.guess_type(filename)[0] or "application/pdf"
        block_type = "image" if media_type.startswith("image/") else "document"
        response = await client.messages.create(
            model=self._model,
            max_tokens=4096,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": block_type,
                            "source": {
                                "type": "base64",
                                "media_type": media_type,
                                "data": base64.standard_b64encode(content).decode(),
                            },
                        },
                        {"type": "text", "text": EXTRACTION_PROMPT},
                    ],
                }
            ],
        )

        items = parse_extraction_csv(response.content[0].text)
        logger.info("extracted %d line items from %s", len(items), filename)
        return items

    async def categorize_batch(self, lines: list[str]) -> list[str]:
        client = self._get_client()
        logger.info("categorizing %d item names", len(lines))

        response = await client.messages.create(
            model=self._model,
            max_tokens=4096,
            system=CATEGORIZATION_PROMPT,
            messages=[{"role": "user", "content": "\n".join(lines)}],
        )

        answer = strip_code_fences(response.content[0].text)
        return [line.strip() for line in answer.splitlines() if line.strip()]
