"""
Core Data Models for the AI Gateway

These models define the schemas for everything that flows between the
gateway clients and their callers:
1. Vendor credentials and signed requests
2. Streaming session state
3. Document understanding results (OCR text, parsed transactions)

DESIGN DECISION: Credentials and signed requests are frozen models.
Nothing in the gateway is allowed to mutate shared configuration, and a
signed request is only valid for the exact (host, date, request-line)
it was computed for.
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# =============================================================================
# ENUMS
# =============================================================================

class StreamState(str, Enum):
    """
    Lifecycle of a streaming inference session.

    COMPLETED, FAILED and CANCELLED are terminal: once reached,
    the session never changes state again.
    """
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamState.COMPLETED, StreamState.FAILED, StreamState.CANCELLED)


class TransactionType(str, Enum):
    """Direction of a bookkeeping transaction."""
    EXPENSE = "expense"
    INCOME = "income"


# =============================================================================
# CREDENTIALS & SIGNING
# =============================================================================

class ModelCredential(BaseModel):
    """
    Vendor credential for one capability (chat, image, vision).

    CRITICAL: api_secret and api_key are only used to derive signatures.
    They are never placed in a request body or a log line.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    app_id: str = Field(default="", description="Vendor application id")
    api_secret: str = Field(default="", repr=False, description="HMAC key")
    api_key: str = Field(default="", repr=False, description="Key id")
    domain: str = Field(default="", description="Model routing tag")

    @property
    def is_complete(self) -> bool:
        """True when all three identity fields are present."""
        return bool(self.app_id and self.api_secret and self.api_key)

    def domain_or(self, default: str) -> str:
        """Routing tag, falling back to the capability default."""
        return self.domain or default


class SignedRequest(BaseModel):
    """
    An outbound call authenticated by an HMAC signature.

    Single-use: regenerate for every call, never cache.
    """
    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="Endpoint URL with auth query parameters")
    method: str = Field(..., description="HTTP method used in the request line")
    host: str
    date: str = Field(..., description="RFC1123 date that was signed")
    authorization: str = Field(..., repr=False)


# =============================================================================
# MESSAGE CONTENT
# =============================================================================

class TextContent(BaseModel):
    """Plain instruction text inside a multi-part user message."""
    type: Literal["text"] = "text"
    text: str

    def to_wire(self) -> dict:
        return {"type": "text", "text": self.text}


class ImageContent(BaseModel):
    """An image inside a multi-part user message, as a base64 data URI."""
    type: Literal["image_url"] = "image_url"
    data_uri: str = Field(..., repr=False)

    @field_validator("data_uri")
    @classmethod
    def validate_data_uri(cls, v: str) -> str:
        if not v.startswith("data:") or ";base64," not in v:
            raise ValueError("Image content must be a base64 data URI")
        return v

    def to_wire(self) -> dict:
        return {"type": "image_url", "image_url": {"url": self.data_uri}}


ContentPart = Annotated[Union[TextContent, ImageContent], Field(discriminator="type")]


# =============================================================================
# DOCUMENT UNDERSTANDING
# =============================================================================

class OCRResult(BaseModel):
    """Raw text produced by the vision stage."""

    raw_text: str = Field(..., description="Joined text returned by the vision model")
    extracted_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def char_count(self) -> int:
        return len(self.raw_text.strip())


_AMOUNT_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")


class ParsedTransaction(BaseModel):
    """
    Structured transaction extracted by the text model.

    CRITICAL: amount == 0 is the sentinel for "insufficient information".
    The caller must re-prompt the user rather than save such a result.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: float = Field(default=0.0, ge=0.0, description="Transaction amount")
    date: date
    category: str = Field(default="其他", max_length=50)
    description: str = Field(default="", max_length=200)
    type: TransactionType = TransactionType.EXPENSE

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v):
        """Accept '¥1,280.50', '128.50元' and negative figures from the model."""
        if v is None or v == "":
            return 0.0
        if isinstance(v, bool):
            raise ValueError("Amount must be a number")
        if isinstance(v, (int, float)):
            return abs(float(v))
        if isinstance(v, str):
            match = _AMOUNT_PATTERN.search(v.replace(",", "").replace("，", ""))
            if not match:
                return 0.0
            return abs(float(match.group()))
        raise ValueError(f"Unsupported amount value: {v!r}")

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v):
        """Map free-form wording onto expense/income."""
        if isinstance(v, TransactionType):
            return v
        text = str(v or "").strip().lower()
        if text in ("income", "收入", "入账", "deposit", "refund", "退款"):
            return TransactionType.INCOME
        return TransactionType.EXPENSE

    @field_validator("category", "description", mode="before")
    @classmethod
    def coerce_text(cls, v):
        if v is None:
            return ""
        return str(v)[:200]

    @property
    def needs_clarification(self) -> bool:
        return self.amount == 0

    @classmethod
    def zeroed(cls, today: date) -> "ParsedTransaction":
        """The empty result handed back when extraction fails."""
        return cls(amount=0.0, date=today)


class PipelineResult(BaseModel):
    """
    Outcome of the document understanding pipeline.

    raw_text is always populated so the caller can show a correction
    dialog even when structured extraction failed.
    """

    raw_text: str
    transaction: ParsedTransaction
    needs_clarification: bool = False
    error: Optional[str] = Field(
        default=None,
        description="Stage B failure message, if extraction degraded"
    )


# =============================================================================
# FINANCE ADVICE
# =============================================================================

class SubscriptionLine(BaseModel):
    """One subscription as shown to the finance advisor prompt."""

    name: str
    category_label: str = "其他"
    price: float = Field(..., ge=0)
    currency: str = "CNY"
    cycle: str = "monthly"


class FinanceSnapshot(BaseModel):
    """
    Precomputed figures for the finance-advice prompt.

    The budget arithmetic happens elsewhere; this is only what the
    advisor gets to see.
    """

    monthly_total: float = Field(default=0.0, ge=0)
    yearly_total: float = Field(default=0.0, ge=0)
    category_totals: dict[str, float] = Field(default_factory=dict)
    subscriptions: list[SubscriptionLine] = Field(default_factory=list)
    base_salary: float = 0.0
    commission: float = 0.0
    monthly_budget: float = 0.0
