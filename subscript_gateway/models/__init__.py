"""
Data Models Package

This package contains all Pydantic models used by the SubScript gateway.
"""

from subscript_gateway.models.gateway import (
    ContentPart,
    FinanceSnapshot,
    ImageContent,
    ModelCredential,
    OCRResult,
    ParsedTransaction,
    PipelineResult,
    SignedRequest,
    StreamState,
    SubscriptionLine,
    TextContent,
    TransactionType,
)
from subscript_gateway.models.backend import (
    ApiEnvelope,
    AuthRequest,
    LoginData,
    Session,
    UserAccount,
)
from subscript_gateway.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Gateway models
    "ContentPart",
    "FinanceSnapshot",
    "ImageContent",
    "ModelCredential",
    "OCRResult",
    "ParsedTransaction",
    "PipelineResult",
    "SignedRequest",
    "StreamState",
    "SubscriptionLine",
    "TextContent",
    "TransactionType",
    # Backend models
    "ApiEnvelope",
    "AuthRequest",
    "LoginData",
    "Session",
    "UserAccount",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
