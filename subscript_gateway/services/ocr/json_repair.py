"""
JSON Repair for Model Output

Chat models are asked for "only a JSON object" and mostly comply, but
replies come back wrapped in code fences or surrounded by chatter. We try,
in order:

1. Direct parse of the whole reply
2. Parse after stripping ``` / ```json fence markers
3. Parse the first balanced {...} span found in the reply

Only a JSON object counts as success. If every strategy fails the reply
is unusable and ParseError is raised - which is different from a valid
object whose amount is zero.
"""

import json
import re
from typing import Optional

from subscript_gateway.services.errors import ParseError


_FENCE_PATTERN = re.compile(r"```[a-zA-Z]*")


def _loads_object(text: str) -> Optional[dict]:
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def strip_code_fences(text: str) -> str:
    """Remove markdown code fence markers, keeping what was inside."""
    return _FENCE_PATTERN.sub("", text).strip()


def first_balanced_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} span in text, or None.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def parse_model_json(text: str) -> dict:
    """
    Parse a model reply into a JSON object using the fallback chain.

    Raises:
        ParseError: If no strategy yields a JSON object
    """
    cleaned = (text or "").strip()

    parsed = _loads_object(cleaned)
    if parsed is not None:
        return parsed

    unfenced = strip_code_fences(cleaned)
    parsed = _loads_object(unfenced)
    if parsed is not None:
        return parsed

    span = first_balanced_object(cleaned)
    if span is not None:
        parsed = _loads_object(span)
        if parsed is not None:
            return parsed

    raise ParseError("Cannot parse JSON from the model response")
