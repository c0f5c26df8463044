"""
Tests for the document understanding pipeline.

Each model call gets its own scripted connection; the connector hands
them out in order (Stage A first, then Stage B).
"""

import asyncio
import json
from datetime import date
from io import BytesIO

import pytest
from PIL import Image

from subscript_gateway.audit import AuditLogger
from subscript_gateway.models.audit import AuditEventType
from subscript_gateway.models.gateway import ModelCredential, TransactionType
from subscript_gateway.services.errors import ConfigurationError, DataError, VendorError
from subscript_gateway.services.ocr import (
    DocumentUnderstandingPipeline,
    NoLegibleTextError,
    build_extraction_prompt,
    detect_mime_type,
    normalize_transaction,
    parse_transaction_date,
)


TODAY = date(2026, 10, 19)
CHAT_URL = "wss://maas-api.cn-huabei-1.xf-yun.com/v1.1/chat"
CREDENTIAL = ModelCredential(app_id="app", api_secret="s", api_key="k")


def reply_frames(text):
    """A full answer split over two frames, the last one terminal."""
    middle = len(text) // 2
    return [
        json.dumps({
            "header": {"code": 0, "status": 1},
            "payload": {"choices": {"text": [{"content": text[:middle]}]}},
        }),
        json.dumps({
            "header": {"code": 0, "status": 2},
            "payload": {"choices": {"text": [{"content": text[middle:]}]}},
        }),
    ]


class ScriptedConnection:
    """Replays a fixed list of frames."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.sent = []

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def recv(self):
        return self.frames.pop(0)

    async def close(self):
        pass


class RecordingAuditStorage:
    def __init__(self):
        self.events = []

    async def append_event(self, event):
        self.events.append(event)
        return True


def make_pipeline(*replies, vision_credential=CREDENTIAL, text_credential=CREDENTIAL):
    connections = [ScriptedConnection(frames) for frames in replies]
    handed_out = []

    async def connect(url):
        connection = connections[len(handed_out)]
        handed_out.append(connection)
        return connection

    storage = RecordingAuditStorage()
    pipeline = DocumentUnderstandingPipeline(
        vision_credential,
        text_credential,
        vision_endpoint=CHAT_URL,
        text_endpoint=CHAT_URL,
        connect=connect,
        audit_logger=AuditLogger(storage),
        today=lambda: TODAY,
    )
    return pipeline, handed_out, storage


def png_bytes():
    buffer = BytesIO()
    Image.new("RGB", (8, 8), "white").save(buffer, format="PNG")
    return buffer.getvalue()


OCR_TEXT = "星巴克咖啡\n2026-10-18 09:12\n合计 金额 ¥128.50\n余额 ¥1,024.00"
EXTRACTED = json.dumps({
    "amount": "¥128.50",
    "date": "2026-10-18",
    "category": "餐饮",
    "description": "星巴克",
    "type": "expense",
}, ensure_ascii=False)


class TestHelpers:
    """Tests for prompt, date and MIME helpers."""

    def test_detect_png(self):
        """Pillow identifies PNG bytes."""
        assert detect_mime_type(png_bytes()) == "image/png"

    def test_detect_garbage(self):
        """Non-image bytes are a data error."""
        with pytest.raises(DataError):
            detect_mime_type(b"definitely not an image")

    def test_date_with_year(self):
        """Full dates are kept."""
        assert parse_transaction_date("2025-12-31", TODAY) == date(2025, 12, 31)

    def test_date_without_year_uses_current_year(self):
        """'10月18日' happens this year."""
        assert parse_transaction_date("10月18日", TODAY) == date(2026, 10, 18)

    def test_missing_date_is_today(self):
        """No date at all means today."""
        assert parse_transaction_date(None, TODAY) == TODAY
        assert parse_transaction_date("yesterday-ish", TODAY) == TODAY

    def test_impossible_date_is_today(self):
        """Month 13 is not a date."""
        assert parse_transaction_date("2026-13-40", TODAY) == TODAY

    def test_prompt_mentions_rules(self):
        """The extraction prompt carries the disambiguation rules."""
        prompt = build_extraction_prompt("text", TODAY)
        assert "2026-10-19" in prompt
        assert "余额" in prompt
        assert "支出" in prompt
        assert '"amount"' in prompt

    def test_normalize_defaults(self):
        """Missing fields fall back to defaults."""
        tx = normalize_transaction({"amount": 12}, TODAY)
        assert tx.amount == 12
        assert tx.category == "其他"
        assert tx.date == TODAY
        assert tx.type == TransactionType.EXPENSE


class TestProcessImage:
    """Tests for the end-to-end image flow."""

    def test_receipt_amount_resolved(self):
        """OCR with '金额 ¥128.50' resolves amount 128.5."""
        pipeline, connections, storage = make_pipeline(
            reply_frames(OCR_TEXT),
            reply_frames(EXTRACTED),
        )
        result = asyncio.run(pipeline.process_image(png_bytes()))

        assert result.raw_text == OCR_TEXT
        assert result.transaction.amount == 128.5
        assert result.transaction.date == date(2026, 10, 18)
        assert result.transaction.category == "餐饮"
        assert result.needs_clarification is False
        assert result.error is None

        event_types = [event.event_type for event in storage.events]
        assert AuditEventType.OCR_COMPLETED in event_types
        assert AuditEventType.EXTRACTION_COMPLETED in event_types

    def test_vision_frame_carries_image(self):
        """Stage A sends the image as a data URI part."""
        pipeline, connections, _ = make_pipeline(
            reply_frames(OCR_TEXT),
            reply_frames(EXTRACTED),
        )
        asyncio.run(pipeline.process_image(png_bytes()))

        sent = connections[0].sent[0]
        content = sent["payload"]["message"]["text"][0]["content"]
        assert content[0]["type"] == "image_url"
        assert content[0]["image_url"]["url"].startswith("data:image/png;base64,")
        assert content[1]["type"] == "text"
        assert sent["parameter"]["chat"]["domain"] == "xqwen2d5vl7b"

    def test_stage_b_uses_text_model(self):
        """Stage B sends the OCR text to the text domain."""
        pipeline, connections, _ = make_pipeline(
            reply_frames(OCR_TEXT),
            reply_frames(EXTRACTED),
        )
        asyncio.run(pipeline.process_image(png_bytes()))

        sent = connections[1].sent[0]
        assert sent["parameter"]["chat"]["domain"] == "xdeepseekv3"
        assert OCR_TEXT in sent["payload"]["message"]["text"][0]["content"]

    def test_no_amount_is_soft_failure(self):
        """Amount 0 asks for clarification and keeps the raw text."""
        ocr_text = "感谢您的光临\n欢迎下次再来"
        pipeline, _, storage = make_pipeline(
            reply_frames(ocr_text),
            reply_frames('{"amount": 0, "date": "", "category": "其他", "description": "", "type": "expense"}'),
        )
        result = asyncio.run(pipeline.process_image(png_bytes()))

        assert result.transaction.amount == 0
        assert result.needs_clarification is True
        assert result.raw_text == ocr_text
        assert result.error is None
        assert storage.events[-1].event_type == AuditEventType.EXTRACTION_INSUFFICIENT

    def test_unparseable_extraction_degrades(self):
        """A Stage B parse failure still returns the OCR text."""
        pipeline, _, storage = make_pipeline(
            reply_frames(OCR_TEXT),
            reply_frames("Sorry, I am not sure what this receipt says."),
        )
        result = asyncio.run(pipeline.process_image(png_bytes()))

        assert result.raw_text == OCR_TEXT
        assert result.transaction.amount == 0
        assert result.transaction.date == TODAY
        assert result.needs_clarification is True
        assert "Cannot parse JSON" in result.error
        assert storage.events[-1].event_type == AuditEventType.EXTRACTION_FAILED

    def test_stage_b_vendor_error_degrades(self):
        """A vendor error in Stage B is not fatal either."""
        error_frame = json.dumps({"header": {"code": 10013, "message": "bad request", "status": 2}})
        pipeline, _, _ = make_pipeline(
            reply_frames(OCR_TEXT),
            [error_frame],
        )
        result = asyncio.run(pipeline.process_image(png_bytes()))

        assert result.raw_text == OCR_TEXT
        assert result.needs_clarification is True
        assert "10013" in result.error

    def test_missing_text_credential_degrades(self):
        """Without a text credential Stage B degrades after OCR."""
        pipeline, connections, _ = make_pipeline(
            reply_frames(OCR_TEXT),
            text_credential=ModelCredential(),
        )
        result = asyncio.run(pipeline.process_image(png_bytes()))

        assert result.raw_text == OCR_TEXT
        assert result.needs_clarification is True
        assert len(connections) == 1

    def test_no_legible_text(self):
        """Too little OCR text stops before Stage B."""
        pipeline, connections, storage = make_pipeline(reply_frames("  ab "))
        with pytest.raises(NoLegibleTextError):
            asyncio.run(pipeline.process_image(png_bytes()))

        assert len(connections) == 1
        assert storage.events[-1].event_type == AuditEventType.OCR_NO_TEXT

    def test_missing_vision_credential(self):
        """Stage A refuses to run without a vision credential."""
        pipeline, connections, _ = make_pipeline(vision_credential=ModelCredential())
        with pytest.raises(ConfigurationError):
            asyncio.run(pipeline.process_image(png_bytes()))
        assert connections == []

    def test_stage_a_vendor_error_is_fatal(self):
        """Stage A failures propagate."""
        error_frame = json.dumps({"header": {"code": 10163, "message": "image too large", "status": 2}})
        pipeline, _, _ = make_pipeline([error_frame])
        with pytest.raises(VendorError):
            asyncio.run(pipeline.process_image(png_bytes(), mime_type="image/png"))


class TestTextFlows:
    """Tests for clarification and natural-language input."""

    def test_clarify_uses_previous_text(self):
        """The correction turn sends OCR text plus the user's answer."""
        pipeline, connections, _ = make_pipeline(
            reply_frames('{"amount": 42, "date": "2026-10-18", "category": "交通", "description": "打车", "type": "expense"}'),
        )
        result = asyncio.run(pipeline.clarify("滴滴出行 行程单", "一共42元"))

        content = connections[0].sent[0]["payload"]["message"]["text"][0]["content"]
        assert "滴滴出行 行程单" in content
        assert "一共42元" in content
        assert result.transaction.amount == 42
        assert result.raw_text == "滴滴出行 行程单"
        assert result.needs_clarification is False

    def test_parse_text_income(self):
        """Typed sentences go straight to Stage B."""
        pipeline, connections, _ = make_pipeline(
            reply_frames('```json\n{"amount": 8000, "date": "10-15", "category": "工资", "description": "十月工资", "type": "收入"}\n```'),
        )
        result = asyncio.run(pipeline.parse_text("10月15日工资到账8000"))

        assert len(connections) == 1
        assert result.transaction.amount == 8000
        assert result.transaction.type == TransactionType.INCOME
        assert result.transaction.date == date(2026, 10, 15)
        assert result.raw_text == "10月15日工资到账8000"
