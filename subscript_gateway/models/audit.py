"""
Audit Models for SubScript Gateway

Every significant gateway action is logged for audit purposes:
1. Streaming sessions (start, completion, failure, cancellation)
2. Document understanding stages
3. Image generation
4. Backend account and sync operations

DESIGN DECISION: Audit events never carry secrets. Credentials, passwords
and session tokens stay out of descriptions and details.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Streaming inference
    STREAM_STARTED = "stream_started"
    STREAM_COMPLETED = "stream_completed"
    STREAM_FAILED = "stream_failed"
    STREAM_CANCELLED = "stream_cancelled"

    # Document understanding
    OCR_COMPLETED = "ocr_completed"
    OCR_NO_TEXT = "ocr_no_text"
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_INSUFFICIENT = "extraction_insufficient"
    EXTRACTION_FAILED = "extraction_failed"

    # Image generation
    IMAGE_GENERATED = "image_generated"
    IMAGE_GENERATION_FAILED = "image_generation_failed"

    # Backend
    ACCOUNT_REGISTERED = "account_registered"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    DATA_PUSHED = "data_pushed"
    DATA_PULLED = "data_pulled"
    HANDLER_ERROR = "handler_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about? ("session", "pipeline", "account", ...)
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None

    # Ties together the events of one user action
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.stream_started(session_id, domain)
        event = AuditEventBuilder.login_failed(username, reason)
    """

    @staticmethod
    def stream_started(
        session_id: str,
        domain: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STREAM_STARTED,
            entity_type="session",
            entity_id=session_id,
            correlation_id=correlation_id,
            description=f"Streaming session started on domain {domain}",
            details={"domain": domain},
        )

    @staticmethod
    def stream_completed(
        session_id: str,
        char_count: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STREAM_COMPLETED,
            entity_type="session",
            entity_id=session_id,
            correlation_id=correlation_id,
            description=f"Streaming session completed with {char_count} characters",
            details={"char_count": char_count},
        )

    @staticmethod
    def stream_failed(
        session_id: str,
        error_message: str,
        error_code: Optional[int] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STREAM_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="session",
            entity_id=session_id,
            correlation_id=correlation_id,
            description="Streaming session failed",
            error_code=str(error_code) if error_code is not None else None,
            error_message=error_message,
        )

    @staticmethod
    def stream_cancelled(
        session_id: str,
        char_count: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STREAM_CANCELLED,
            entity_type="session",
            entity_id=session_id,
            correlation_id=correlation_id,
            description="Streaming session cancelled by caller",
            details={"char_count": char_count},
        )

    @staticmethod
    def ocr_completed(
        char_count: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCR_COMPLETED,
            entity_type="pipeline",
            correlation_id=correlation_id,
            description=f"Vision stage returned {char_count} characters",
            details={"char_count": char_count},
        )

    @staticmethod
    def ocr_no_text(
        char_count: int,
        min_chars: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCR_NO_TEXT,
            severity=AuditSeverity.WARNING,
            entity_type="pipeline",
            correlation_id=correlation_id,
            description="No legible text found in image",
            details={"char_count": char_count, "min_chars": min_chars},
        )

    @staticmethod
    def extraction_completed(
        amount: float,
        transaction_type: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            entity_type="pipeline",
            correlation_id=correlation_id,
            description=f"Extracted {transaction_type} of {amount:.2f}",
            details={"amount": amount, "type": transaction_type},
        )

    @staticmethod
    def extraction_insufficient(
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_INSUFFICIENT,
            severity=AuditSeverity.WARNING,
            entity_type="pipeline",
            correlation_id=correlation_id,
            description="Extraction resolved amount to zero, clarification needed",
        )

    @staticmethod
    def extraction_failed(
        error_type: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="pipeline",
            correlation_id=correlation_id,
            description=f"Structured extraction failed: {error_type}",
            error_message=error_message,
        )

    @staticmethod
    def image_generated(
        prompt_chars: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMAGE_GENERATED,
            entity_type="image",
            correlation_id=correlation_id,
            description="Image generated",
            details={"prompt_chars": prompt_chars},
        )

    @staticmethod
    def image_generation_failed(
        error_message: str,
        status_code: Optional[int] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMAGE_GENERATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="image",
            correlation_id=correlation_id,
            description="Image generation failed",
            error_code=str(status_code) if status_code is not None else None,
            error_message=error_message,
        )

    @staticmethod
    def account_registered(username: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_REGISTERED,
            entity_type="account",
            entity_id=username,
            description=f"Account registered: {username}",
        )

    @staticmethod
    def login_succeeded(username: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_SUCCEEDED,
            entity_type="account",
            entity_id=username,
            description=f"Login succeeded: {username}",
        )

    @staticmethod
    def login_failed(username: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=username,
            description=f"Login failed: {username}",
            details={"reason": reason},
        )

    @staticmethod
    def data_pushed(username: str, size_bytes: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_PUSHED,
            entity_type="account",
            entity_id=username,
            description=f"Sync data pushed ({size_bytes} bytes)",
            details={"size_bytes": size_bytes},
        )

    @staticmethod
    def data_pulled(username: str, found: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_PULLED,
            entity_type="account",
            entity_id=username,
            description="Sync data pulled" if found else "Sync pull found no data",
            details={"found": found},
        )

    @staticmethod
    def handler_error(
        route: str,
        error_type: str,
        error_message: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HANDLER_ERROR,
            severity=AuditSeverity.ERROR,
            entity_type="route",
            entity_id=route,
            description=f"Unhandled error in {route}: {error_type}",
            error_message=error_message,
        )
