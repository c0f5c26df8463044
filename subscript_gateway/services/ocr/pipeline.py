"""
Document Understanding Pipeline

Two independent one-shot model calls glued by plain text:

STAGE A - VISION:
- Image bytes -> data URI -> vision model
- Streamed deltas are joined into one raw OCR text
- Too little text means "no legible text found" and we stop here

STAGE B - STRUCTURED EXTRACTION:
- Free text (user sentence, OCR text, or OCR text + a clarification)
  -> text model -> a single JSON object with amount, date, category,
  description, type
- The reply goes through the JSON repair chain

CRITICAL: Stage B never fails the pipeline. If it raises, the caller still
gets the raw OCR text with a zeroed transaction so it can show a
correction dialog. amount == 0 is a soft failure with the same outcome:
ask the user, with the OCR text as context.
"""

import base64
import re
from datetime import date
from io import BytesIO
from typing import Callable, Optional
from uuid import UUID

from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from subscript_gateway.models.audit import AuditEventBuilder
from subscript_gateway.models.gateway import (
    ImageContent,
    ModelCredential,
    OCRResult,
    ParsedTransaction,
    PipelineResult,
    TextContent,
)
from subscript_gateway.services.errors import (
    ConfigurationError,
    DataError,
    GatewayError,
    ParseError,
)
from subscript_gateway.services.inference.streaming import (
    Connector,
    StreamingInferenceSession,
)
from subscript_gateway.services.ocr.json_repair import parse_model_json
from subscript_gateway.services.signing import RequestSigner


class NoLegibleTextError(DataError):
    """The vision stage returned too little text to work with."""
    pass


OCR_INSTRUCTION = (
    "Transcribe all text visible in this image (receipt, bill, payment "
    "screenshot or bank notification). Keep the original language and line "
    "order. Output the text only, without commentary."
)

_FULL_DATE = re.compile(r"(\d{4})\s*[-/.年]\s*(\d{1,2})\s*[-/.月]\s*(\d{1,2})")
_MONTH_DAY = re.compile(r"(\d{1,2})\s*[-/.月]\s*(\d{1,2})")


def detect_mime_type(image_bytes: bytes) -> str:
    """
    Identify the image format with Pillow.

    Raises:
        DataError: If the bytes are not a readable image
    """
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            image_format = img.format
    except (UnidentifiedImageError, OSError) as e:
        raise DataError(f"Unsupported or corrupt image: {e}")

    mime_type = Image.MIME.get(image_format or "")
    if not mime_type:
        raise DataError(f"Unsupported image format: {image_format}")
    return mime_type


def build_extraction_prompt(text: str, today: date) -> str:
    """The Stage B instruction; asks for exactly five fields."""
    return f"""You are a bookkeeping assistant. Extract ONE transaction from the text below.

Today is {today.isoformat()}.

Text:
\"\"\"
{text}
\"\"\"

Rules:
- amount: the amount actually paid or received, as a positive number.
  Ignore balances (余额), discounts (优惠/立减), points and card numbers.
  If several figures remain, prefer the largest, most prominent one
  (usually the central or bolded total such as 实付/合计/金额).
  If no figure looks like an amount, use 0.
- date: YYYY-MM-DD. If the year is missing use {today.year}; if no date
  is present use {today.isoformat()}.
- category: a short Chinese label such as 餐饮, 交通, 购物, 娱乐, 生活缴费, 工资, 其他.
- description: merchant or a short summary, at most 20 characters.
- type: "expense" or "income". Wording like withdrawal, 支出, 消费,
  付款, 扣款 means "expense"; 收入, 到账, 退款, 工资 means "income".

Respond with ONLY a JSON object in this exact format:
{{"amount": 0, "date": "YYYY-MM-DD", "category": "其他", "description": "", "type": "expense"}}"""


def parse_transaction_date(value, today: date) -> date:
    """Read the model's date, defaulting year (and date) to today."""
    text = str(value or "")

    match = _FULL_DATE.search(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
    else:
        match = _MONTH_DAY.search(text)
        if not match:
            return today
        year = today.year
        month, day = (int(g) for g in match.groups())

    try:
        return date(year, month, day)
    except ValueError:
        return today


def normalize_transaction(data: dict, today: date) -> ParsedTransaction:
    """
    Turn the model's JSON object into a ParsedTransaction.

    Raises:
        ParseError: If the object cannot describe a transaction
    """
    try:
        return ParsedTransaction(
            amount=data.get("amount"),
            date=parse_transaction_date(data.get("date"), today),
            category=data.get("category") or "其他",
            description=data.get("description") or "",
            type=data.get("type"),
        )
    except ValidationError as e:
        raise ParseError(f"JSON does not describe a transaction: {e.error_count()} invalid fields")


class DocumentUnderstandingPipeline:
    """
    Image -> raw text -> structured transaction.

    Each stage opens its own streaming session; nothing is shared
    between them except the text.
    """

    def __init__(
        self,
        vision_credential: ModelCredential,
        text_credential: ModelCredential,
        *,
        vision_endpoint: str,
        text_endpoint: str,
        vision_domain: str = "xqwen2d5vl7b",
        text_domain: str = "xdeepseekv3",
        min_ocr_chars: int = 5,
        temperature: float = 0.1,
        vision_max_tokens: int = 2048,
        signer: Optional[RequestSigner] = None,
        connect: Optional[Connector] = None,
        audit_logger=None,
        today: Callable[[], date] = date.today,
    ):
        self._vision_credential = vision_credential
        self._text_credential = text_credential
        self._vision_endpoint = vision_endpoint
        self._text_endpoint = text_endpoint
        self._vision_domain = vision_domain
        self._text_domain = text_domain
        self._min_ocr_chars = min_ocr_chars
        self._temperature = temperature
        self._vision_max_tokens = vision_max_tokens
        self._signer = signer or RequestSigner()
        self._connect = connect
        self._audit_logger = audit_logger
        self._today = today

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    def _session(
        self,
        credential: ModelCredential,
        endpoint: str,
        domain: str,
        max_tokens: int,
        correlation_id: Optional[UUID],
    ) -> StreamingInferenceSession:
        return StreamingInferenceSession(
            credential,
            endpoint=endpoint,
            default_domain=domain,
            temperature=self._temperature,
            max_tokens=max_tokens,
            signer=self._signer,
            connect=self._connect,
            audit_logger=self._audit_logger,
            correlation_id=correlation_id,
        )

    # -------------------------------------------------------------------------
    # Stage A
    # -------------------------------------------------------------------------

    async def extract_text(
        self,
        image_bytes: bytes,
        mime_type: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> OCRResult:
        """
        Run the vision model over an image.

        Raises:
            ConfigurationError: Vision credential missing (before any I/O)
            DataError: Image bytes unreadable
            TransportError / VendorError: From the streaming session
        """
        if not self._vision_credential.is_complete:
            raise ConfigurationError("Vision model credentials are not configured.")

        mime_type = mime_type or detect_mime_type(image_bytes)
        encoded = base64.b64encode(image_bytes).decode("ascii")
        parts = [
            ImageContent(data_uri=f"data:{mime_type};base64,{encoded}"),
            TextContent(text=OCR_INSTRUCTION),
        ]

        session = self._session(
            self._vision_credential,
            self._vision_endpoint,
            self._vision_domain,
            max_tokens=self._vision_max_tokens,
            correlation_id=correlation_id,
        )
        raw_text = await session.run(parts)
        return OCRResult(raw_text=raw_text.strip())

    # -------------------------------------------------------------------------
    # Stage B
    # -------------------------------------------------------------------------

    async def extract_transaction(
        self,
        text: str,
        correlation_id: Optional[UUID] = None,
    ) -> ParsedTransaction:
        """
        Ask the text model for a structured transaction.

        Raises:
            ConfigurationError: Text credential missing
            ParseError: Reply could not be read as a JSON object
            TransportError / VendorError: From the streaming session
        """
        if not self._text_credential.is_complete:
            raise ConfigurationError("AI API credentials are not configured.")

        today = self._today()
        session = self._session(
            self._text_credential,
            self._text_endpoint,
            self._text_domain,
            max_tokens=1024,
            correlation_id=correlation_id,
        )
        reply = await session.run(build_extraction_prompt(text, today))
        return normalize_transaction(parse_model_json(reply), today)

    async def _structure(
        self,
        text: str,
        raw_text: str,
        correlation_id: Optional[UUID],
    ) -> PipelineResult:
        """Stage B with degradation: failures become 'please clarify'."""
        try:
            transaction = await self.extract_transaction(text, correlation_id)
        except GatewayError as e:
            await self._audit(AuditEventBuilder.extraction_failed(
                error_type=type(e).__name__,
                error_message=str(e),
                correlation_id=correlation_id,
            ))
            return PipelineResult(
                raw_text=raw_text,
                transaction=ParsedTransaction.zeroed(self._today()),
                needs_clarification=True,
                error=str(e),
            )

        if transaction.needs_clarification:
            await self._audit(AuditEventBuilder.extraction_insufficient(correlation_id))
            return PipelineResult(
                raw_text=raw_text,
                transaction=transaction,
                needs_clarification=True,
            )

        await self._audit(AuditEventBuilder.extraction_completed(
            amount=transaction.amount,
            transaction_type=transaction.type.value,
            correlation_id=correlation_id,
        ))
        return PipelineResult(raw_text=raw_text, transaction=transaction)

    # -------------------------------------------------------------------------
    # End-to-end flows
    # -------------------------------------------------------------------------

    async def process_image(
        self,
        image_bytes: bytes,
        mime_type: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> PipelineResult:
        """
        Scan a receipt image into a transaction.

        Raises:
            NoLegibleTextError: Stage A found (almost) no text
            ConfigurationError / TransportError / VendorError: Stage A failed
        """
        ocr = await self.extract_text(image_bytes, mime_type, correlation_id)

        if ocr.char_count < self._min_ocr_chars:
            await self._audit(AuditEventBuilder.ocr_no_text(
                char_count=ocr.char_count,
                min_chars=self._min_ocr_chars,
                correlation_id=correlation_id,
            ))
            raise NoLegibleTextError("No legible text found in the image.")

        await self._audit(AuditEventBuilder.ocr_completed(
            char_count=ocr.char_count,
            correlation_id=correlation_id,
        ))
        return await self._structure(ocr.raw_text, ocr.raw_text, correlation_id)

    async def clarify(
        self,
        previous_ocr_text: str,
        clarification: str,
        correlation_id: Optional[UUID] = None,
    ) -> PipelineResult:
        """Follow-up correction turn: OCR context plus what the user told us."""
        combined = (
            f"{previous_ocr_text}\n\n"
            f"User clarification (takes precedence over the text above): {clarification}"
        )
        return await self._structure(combined, previous_ocr_text, correlation_id)

    async def parse_text(
        self,
        text: str,
        correlation_id: Optional[UUID] = None,
    ) -> PipelineResult:
        """Natural-language bookkeeping ("午饭 35 元") straight to Stage B."""
        return await self._structure(text, text, correlation_id)
