"""Tests for the model-output JSON repair chain."""

import pytest

from subscript_gateway.services.errors import ParseError
from subscript_gateway.services.ocr import (
    first_balanced_object,
    parse_model_json,
    strip_code_fences,
)


BARE = '{"amount": 10, "date": "2026-10-19", "category": "餐饮", "description": "午饭", "type": "expense"}'


class TestParseModelJson:
    """Tests for the three strategies, in order."""

    def test_direct_parse(self):
        """A clean reply parses directly."""
        assert parse_model_json(BARE)["amount"] == 10

    def test_fenced_reply_equals_bare(self):
        """```json fences do not change the result."""
        fenced = f"```json\n{BARE}\n```"
        assert parse_model_json(fenced) == parse_model_json(BARE)

    def test_plain_fence(self):
        """Fences without a language tag are stripped too."""
        assert parse_model_json(f"```\n{BARE}\n```")["description"] == "午饭"

    def test_object_inside_chatter(self):
        """The first balanced object is found inside prose."""
        reply = f"Sure! Here is the transaction:\n{BARE}\nLet me know if anything is off."
        assert parse_model_json(reply)["category"] == "餐饮"

    def test_nested_object(self):
        """Nested braces stay balanced."""
        reply = 'Result: {"amount": 5, "meta": {"source": "ocr"}} done'
        assert parse_model_json(reply) == {"amount": 5, "meta": {"source": "ocr"}}

    def test_zero_amount_is_not_a_parse_error(self):
        """A valid object with amount 0 parses fine."""
        assert parse_model_json('{"amount": 0}') == {"amount": 0}

    def test_no_json_raises(self):
        """Prose without an object fails."""
        with pytest.raises(ParseError, match="Cannot parse JSON"):
            parse_model_json("I could not find any amount in this text.")

    def test_array_is_not_an_object(self):
        """Only objects count."""
        with pytest.raises(ParseError):
            parse_model_json("[1, 2, 3]")

    def test_empty_reply_raises(self):
        """An empty reply is unusable."""
        with pytest.raises(ParseError):
            parse_model_json("")

    def test_unbalanced_object_raises(self):
        """A truncated object cannot be repaired."""
        with pytest.raises(ParseError):
            parse_model_json('{"amount": 10, "date": "2026-')


class TestHelpers:
    """Tests for the individual repair steps."""

    def test_strip_code_fences(self):
        """Fence markers go, content stays."""
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_braces_inside_strings_ignored(self):
        """A '}' inside a string does not close the object."""
        text = 'x {"description": "a } b", "amount": 1} y'
        assert first_balanced_object(text) == '{"description": "a } b", "amount": 1}'

    def test_no_object(self):
        """No opening brace means no span."""
        assert first_balanced_object("nothing here") is None
