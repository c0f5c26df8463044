"""
Main Orchestrator for the SubScript Gateway

This module ties together all the components and defines the
end-to-end flows for:
1. Finance advice (snapshot -> prompt -> streamed answer, cancellable)
2. Receipt scan (image -> OCR -> transaction, with a correction turn)
3. Cloud backup (push/pull against the backend, or a Pantry basket)

DESIGN DECISION: This is the only place that reads settings.
Every component receives explicit credentials, URLs and timeouts, so any
of them can be built in a test without touching the environment.
"""

from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional
from uuid import UUID

from subscript_gateway.audit import AuditLogger, create_correlation_id
from subscript_gateway.config import Settings, get_settings
from subscript_gateway.models.gateway import FinanceSnapshot, ModelCredential, PipelineResult
from subscript_gateway.services.errors import user_message
from subscript_gateway.services.image import ImageSynthesisClient
from subscript_gateway.services.inference import StreamingInferenceSession, build_finance_advice_prompt
from subscript_gateway.services.inference.streaming import Connector
from subscript_gateway.services.ocr import DocumentUnderstandingPipeline
from subscript_gateway.services.signing import RequestSigner
from subscript_gateway.services.sync import PantryBackupClient, SyncClient


class FinanceAdviceFlow:
    """
    Streams the advisor's answer for a finance snapshot.

    Each call opens a fresh session; closing the UI surface maps to the
    cancel function returned by start_advice().
    """

    def __init__(
        self,
        credential: ModelCredential,
        *,
        endpoint: str,
        default_domain: str = "xdeepseekv3",
        temperature: float = 0.5,
        max_tokens: int = 4096,
        receive_timeout: Optional[float] = None,
        signer: Optional[RequestSigner] = None,
        connect: Optional[Connector] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._credential = credential
        self._endpoint = endpoint
        self._default_domain = default_domain
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._receive_timeout = receive_timeout
        self._signer = signer or RequestSigner()
        self._connect = connect
        self._audit_logger = audit_logger

    def new_session(self, correlation_id: Optional[UUID] = None) -> StreamingInferenceSession:
        return StreamingInferenceSession(
            self._credential,
            endpoint=self._endpoint,
            default_domain=self._default_domain,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            receive_timeout=self._receive_timeout,
            signer=self._signer,
            connect=self._connect,
            audit_logger=self._audit_logger,
            correlation_id=correlation_id or create_correlation_id(),
        )

    async def stream_advice(self, snapshot: FinanceSnapshot) -> AsyncIterator[str]:
        """Yield the advice as it arrives."""
        session = self.new_session()
        async for delta in session.stream(build_finance_advice_prompt(snapshot)):
            yield delta

    def start_advice(
        self,
        snapshot: FinanceSnapshot,
        on_token: Callable[[str], None],
        on_complete: Callable[[], None],
        on_error: Callable[[str], None],
    ) -> Callable[[], None]:
        """Callback form; on_error gets a user-facing message. Returns the cancel function."""
        session = self.new_session()
        return session.start(
            build_finance_advice_prompt(snapshot),
            on_token,
            on_complete,
            on_error,
            format_error=user_message,
        )


class ReceiptScanFlow:
    """
    Receipt image to transaction, with a follow-up correction turn.

    Flow:
    1. scan() -> PipelineResult (raw text always included)
    2. If needs_clarification: ask the user, then clarify() with the
       raw text from step 1 as context
    3. The caller saves the transaction; nothing is persisted here
    """

    def __init__(self, pipeline: DocumentUnderstandingPipeline):
        self._pipeline = pipeline

    async def scan(self, image_bytes: bytes, mime_type: Optional[str] = None) -> PipelineResult:
        return await self._pipeline.process_image(
            image_bytes,
            mime_type,
            correlation_id=create_correlation_id(),
        )

    async def clarify(self, previous: PipelineResult, clarification: str) -> PipelineResult:
        return await self._pipeline.clarify(
            previous.raw_text,
            clarification,
            correlation_id=create_correlation_id(),
        )

    async def record_text(self, text: str) -> PipelineResult:
        """Bookkeeping from a typed sentence."""
        return await self._pipeline.parse_text(text, correlation_id=create_correlation_id())


@dataclass
class GatewayComponents:
    """Everything the UI layer talks to."""

    advice: FinanceAdviceFlow
    receipts: ReceiptScanFlow
    images: ImageSynthesisClient
    sync: SyncClient
    pantry: PantryBackupClient
    audit_logger: AuditLogger


def create_gateway_components(
    settings: Optional[Settings] = None,
    connect: Optional[Connector] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> GatewayComponents:
    """
    Factory function to create all client-side components.

    Args:
        settings: Settings to read (defaults to the environment)
        connect: Websocket connector override (tests)
        audit_logger: Audit logger (defaults to local-only logging)
    """
    settings = settings or get_settings()
    audit_logger = audit_logger or AuditLogger()
    signer = RequestSigner()

    chat = settings.chat
    vision = settings.vision
    image = settings.image
    sync = settings.sync

    advice = FinanceAdviceFlow(
        chat.credential(),
        endpoint=chat.endpoint,
        default_domain=chat.default_domain,
        temperature=chat.temperature,
        max_tokens=chat.max_tokens,
        receive_timeout=chat.receive_timeout_seconds,
        signer=signer,
        connect=connect,
        audit_logger=audit_logger,
    )

    pipeline = DocumentUnderstandingPipeline(
        vision.credential(),
        chat.credential(),
        vision_endpoint=vision.endpoint,
        text_endpoint=chat.endpoint,
        vision_domain=vision.default_domain,
        text_domain=chat.default_domain,
        min_ocr_chars=settings.app.min_ocr_chars,
        temperature=vision.temperature,
        vision_max_tokens=vision.max_tokens,
        signer=signer,
        connect=connect,
        audit_logger=audit_logger,
    )

    images = ImageSynthesisClient(
        image.credential(),
        relay_base_url=settings.relay.base_url,
        endpoint=image.endpoint,
        default_domain=image.default_domain,
        timeout=image.timeout_seconds,
        signer=signer,
        audit_logger=audit_logger,
    )

    return GatewayComponents(
        advice=advice,
        receipts=ReceiptScanFlow(pipeline),
        images=images,
        sync=SyncClient(sync.base_url, timeout=sync.timeout_seconds),
        pantry=PantryBackupClient(sync.pantry_id, timeout=sync.timeout_seconds),
        audit_logger=audit_logger,
    )
