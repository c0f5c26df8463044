"""Streaming inference package."""

from subscript_gateway.services.inference.prompts import build_finance_advice_prompt
from subscript_gateway.services.inference.streaming import (
    StreamConnection,
    StreamingInferenceSession,
    StreamTimeoutError,
    extract_delta,
    websocket_connect,
)

__all__ = [
    "StreamConnection",
    "StreamingInferenceSession",
    "StreamTimeoutError",
    "build_finance_advice_prompt",
    "extract_delta",
    "websocket_connect",
]
