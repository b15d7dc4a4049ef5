"""Tests for extraction/categorization backends (mocked API calls)."""

import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from receipt_summary.ai import (
    ReceiptAI,
    create_ai,
    parse_extraction_csv,
    poll_until,
    strip_code_fences,
)
from receipt_summary.ai.claude import ClaudeReceiptAI
from receipt_summary.ai.gemini import GeminiReceiptAI
from receipt_summary.config import load_config
from receipt_summary.errors import ExtractionTimeout, TransportError

EXTRACTED = """\
Artikelbezeichnung,Menge,Preis,Total,Datetime,Seller
Bread,1,3.40,3.40,14.10.23 10:59,Coop
Toothpaste,1,3.40,3.40,14.10.23 10:59,Coop
"""

CATEGORIZED = """\
Bread:3.40:2023-10-14T10:59:00:Coop,Bread,Gebäck
Toothpaste:3.40:2023-10-14T10:59:00:Coop,Toothpaste,Hygiene
"""


class TestCreateAI:
    def test_create_claude(self):
        config = load_config()
        assert isinstance(create_ai(config), ClaudeReceiptAI)

    def test_create_gemini(self):
        config = load_config()
        config.ai.backend = "gemini"
        ai = create_ai(config)
        assert isinstance(ai, GeminiReceiptAI)
        assert isinstance(ai, ReceiptAI)

    def test_create_unknown(self):
        config = load_config()
        config.ai.backend = "unknown"
        with pytest.raises(ValueError, match="Unknown AI backend"):
            create_ai(config)


class TestParseExtractionCsv:
    def test_parse(self):
        items = parse_extraction_csv(EXTRACTED)
        assert [i.article_name for i in items] == ["Bread", "Toothpaste"]
        assert items[0].date_time == "2023-10-14T10:59:00"
        assert items[0].category == ""

    def test_markdown_fences(self):
        items = parse_extraction_csv(f"```csv\n{EXTRACTED}```")
        assert len(items) == 2

    def test_header_only(self):
        assert parse_extraction_csv("Artikelbezeichnung,Menge,Preis,Total,Datetime,Seller") == []

    def test_malformed_rows_skipped(self, caplog):
        text = EXTRACTED + "Wine,1,12.90,Coop\n"
        with caplog.at_level("WARNING"):
            items = parse_extraction_csv(text)
        assert len(items) == 2
        assert "Skipped 1 of 3 extracted rows" in caplog.text

    def test_strip_code_fences_plain_text(self):
        assert strip_code_fences("  a,b\n") == "a,b"


class TestPollUntil:
    @pytest.mark.asyncio
    async def test_returns_first_value(self):
        answers = iter([None, None, "done"])
        check = AsyncMock(side_effect=lambda: next(answers))
        assert await poll_until(check, interval=0.001, timeout=5) == "done"
        assert check.await_count == 3

    @pytest.mark.asyncio
    async def test_timeout(self):
        check = AsyncMock(return_value=None)
        with pytest.raises(ExtractionTimeout, match="upload not finished"):
            await poll_until(check, interval=0.01, timeout=0.03, what="upload")
        assert check.await_count >= 1

    @pytest.mark.asyncio
    async def test_timeout_is_timeout_error(self):
        check = AsyncMock(return_value=None)
        with pytest.raises(TimeoutError):
            await poll_until(check, interval=0.01, timeout=0)


def _mock_anthropic(text: str):
    mock_response = MagicMock()
    mock_response.content = [MagicMock(text=text)]

    mock_client = AsyncMock()
    mock_client.messages.create = AsyncMock(return_value=mock_response)

    mock_anthropic = MagicMock()
    mock_anthropic.AsyncAnthropic.return_value = mock_client
    return mock_anthropic, mock_client


class TestClaudeReceiptAI:
    @pytest.mark.asyncio
    async def test_requires_api_key(self):
        ai = ClaudeReceiptAI(api_key="")
        with pytest.raises(ValueError, match="API key is not set"):
            await ai.extract_line_items(b"%PDF", "receipt.pdf")

    @pytest.mark.asyncio
    async def test_extract_pdf_mocked(self):
        mock_anthropic, mock_client = _mock_anthropic(EXTRACTED)

        with patch.dict(sys.modules, {"anthropic": mock_anthropic}):
            ai = ClaudeReceiptAI(api_key="test-key")
            items = await ai.extract_line_items(b"%PDF-1.4", "receipt.pdf")

        assert [i.article_name for i in items] == ["Bread", "Toothpaste"]
        content = mock_client.messages.create.await_args.kwargs["messages"][0]["content"]
        assert content[0]["type"] == "document"
        assert content[0]["source"]["media_type"] == "application/pdf"

    @pytest.mark.asyncio
    async def test_extract_image_mocked(self):
        mock_anthropic, mock_client = _mock_anthropic(EXTRACTED)

        with patch.dict(sys.modules, {"anthropic": mock_anthropic}):
            ai = ClaudeReceiptAI(api_key="test-key")
            await ai.extract_line_items(b"\xff\xd8\xff\xe0fake-jpeg", "receipt.jpg")

        content = mock_client.messages.create.await_args.kwargs["messages"][0]["content"]
        assert content[0]["type"] == "image"
        assert content[0]["source"]["media_type"] == "image/jpeg"

    @pytest.mark.asyncio
    async def test_categorize_mocked(self):
        mock_anthropic, mock_client = _mock_anthropic(CATEGORIZED + "\n\n")

        with patch.dict(sys.modules, {"anthropic": mock_anthropic}):
            ai = ClaudeReceiptAI(api_key="test-key")
            lines = await ai.categorize_batch(["a,Bread", "b,Toothpaste"])

        assert lines == CATEGORIZED.splitlines()
        kwargs = mock_client.messages.create.await_args.kwargs
        assert kwargs["messages"][0]["content"] == "a,Bread\nb,Toothpaste"
        assert "categorize shopping items" in kwargs["system"]


def _mock_genai(text: str, states=("PROCESSING", "ACTIVE")):
    mock_genai = MagicMock()
    uploaded = MagicMock()
    uploaded.name = "files/abc"
    mock_genai.upload_file.return_value = uploaded

    polled = []
    for state in states:
        f = MagicMock()
        f.state.name = state
        polled.append(f)
    mock_genai.get_file.side_effect = polled

    mock_response = MagicMock()
    mock_response.text = text
    mock_model = MagicMock()
    mock_model.generate_content_async = AsyncMock(return_value=mock_response)
    mock_genai.GenerativeModel.return_value = mock_model

    mock_google = MagicMock()
    mock_google.generativeai = mock_genai
    modules = {"google": mock_google, "google.generativeai": mock_genai}
    return modules, mock_genai, mock_model


class TestGeminiReceiptAI:
    @pytest.mark.asyncio
    async def test_requires_api_key(self):
        ai = GeminiReceiptAI(api_key="")
        with pytest.raises(ValueError, match="API key is not set"):
            await ai.categorize_batch(["a,Bread"])

    @pytest.mark.asyncio
    async def test_extract_mocked(self):
        modules, mock_genai, mock_model = _mock_genai(EXTRACTED)

        with patch.dict(sys.modules, modules):
            ai = GeminiReceiptAI(api_key="test-key", poll_interval=0.001)
            items = await ai.extract_line_items(b"%PDF-1.4", "receipt.pdf")

        assert len(items) == 2
        mock_genai.configure.assert_called_once_with(api_key="test-key")
        assert mock_genai.get_file.call_count == 2
        mock_genai.delete_file.assert_called_once_with("files/abc")
        mock_model.generate_content_async.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_extract_failed_upload(self):
        modules, mock_genai, mock_model = _mock_genai(EXTRACTED, states=("FAILED",))

        with patch.dict(sys.modules, modules):
            ai = GeminiReceiptAI(api_key="test-key", poll_interval=0.001)
            with pytest.raises(TransportError):
                await ai.extract_line_items(b"%PDF-1.4", "receipt.pdf")

        mock_genai.delete_file.assert_called_once_with("files/abc")
        mock_model.generate_content_async.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_extract_times_out(self):
        modules, mock_genai, _ = _mock_genai(EXTRACTED, states=())
        mock_genai.get_file.side_effect = None
        mock_genai.get_file.return_value.state.name = "PROCESSING"

        with patch.dict(sys.modules, modules):
            ai = GeminiReceiptAI(api_key="test-key", poll_interval=0.01, max_wait=0.02)
            with pytest.raises(ExtractionTimeout):
                await ai.extract_line_items(b"%PDF-1.4", "receipt.pdf")

        mock_genai.delete_file.assert_called_once_with("files/abc")

    @pytest.mark.asyncio
    async def test_categorize_mocked(self):
        modules, mock_genai, _ = _mock_genai(f"```\n{CATEGORIZED}```")

        with patch.dict(sys.modules, modules):
            ai = GeminiReceiptAI(api_key="test-key")
            lines = await ai.categorize_batch(["a,Bread", "b,Toothpaste"])

        assert lines == CATEGORIZED.splitlines()
        assert "system_instruction" in mock_genai.GenerativeModel.call_args.kwargs
