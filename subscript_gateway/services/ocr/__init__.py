"""Document understanding (OCR + extraction) package."""

from subscript_gateway.services.ocr.json_repair import (
    first_balanced_object,
    parse_model_json,
    strip_code_fences,
)
from subscript_gateway.services.ocr.pipeline import (
    DocumentUnderstandingPipeline,
    NoLegibleTextError,
    build_extraction_prompt,
    detect_mime_type,
    normalize_transaction,
    parse_transaction_date,
)

__all__ = [
    "DocumentUnderstandingPipeline",
    "NoLegibleTextError",
    "build_extraction_prompt",
    "detect_mime_type",
    "first_balanced_object",
    "normalize_transaction",
    "parse_model_json",
    "parse_transaction_date",
    "strip_code_fences",
]
