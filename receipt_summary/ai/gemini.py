"""Gemini API backend for receipt extraction and categorization."""

from __future__ import annotations

import asyncio
import io
import logging
import mimetypes

from ..errors import TransportError
from ..models import LineItem
from . import (
    CATEGORIZATION_PROMPT,
    EXTRACTION_PROMPT,
    ReceiptAI,
    parse_extraction_csv,
    poll_until,
    strip_code_fences,
)

logger = logging.getLogger(__name__)


class GeminiReceiptAI(ReceiptAI):
    """Read receipts and categorize articles with Google Gemini.

    Receipts go through the Gemini file API, which processes uploads
    asynchronously; the upload is polled until it is usable.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "gemini-2.0-flash",
        poll_interval: float = 1.5,
        max_wait: float = 120.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._poll_interval = poll_interval
        self._max_wait = max_wait

    def _genai(self):
        if not self._api_key:
            raise ValueError(
                "Gemini API key is not set. "
                "Check the config file or the GEMINI_API_KEY environment variable."
            )

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        return genai

    async def extract_line_items(
        self, content: bytes, filename: str
    ) -> list[LineItem]:
        genai = self._genai()
        logger.info("extracting line items from %s", filename)

        mime_type = mimetypes.guess_type(filename)[0] or "application/pdf"
        uploaded = await asyncio.to_thread(
            genai.upload_file,
            io.BytesIO(content),
            mime_type=mime_type,
            display_name=filename,
        )
        try:
            async def check():
                current = await asyncio.to_thread(genai.get_file, uploaded.name)
                state = current.state.name
                if state == "FAILED":
                    raise TransportError(f"Gemini could not process {filename}")
                return current if state == "ACTIVE" else None

            active = await poll_until(
                check,
                interval=self._poll_interval,
                timeout=self._max_wait,
                what=f"processing of {filename}",
            )

            model = genai.GenerativeModel(self._model)
            response = await model.generate_content_async([active, EXTRACTION_PROMPT])
        finally:
            await asyncio.to_thread(genai.delete_file, uploaded.name)

        items = parse_extraction_csv(response.text)
        logger.info("extracted %d line items from %s", len(items), filename)
        return items

    async def categorize_batch(self, lines: list[str]) -> list[str]:
        genai = self._genai()
        logger.info("categorizing %d item names", len(lines))

        model = genai.GenerativeModel(
            self._model, system_instruction=CATEGORIZATION_PROMPT
        )
        response = await model.generate_content_async("\n".join(lines))

        answer = strip_code_fences(response.text)
        return [line.strip() for line in answer.splitlines() if line.strip()]
