"""
Tests for request signing.

The signer is pure, so every test pins the clock.
"""

import base64
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import pytest

from subscript_gateway.models.gateway import ModelCredential
from subscript_gateway.services.errors import ConfigurationError
from subscript_gateway.services.signing import (
    RequestSigner,
    build_authorization,
    build_canonical_string,
    format_http_date,
)


CHAT_URL = "wss://maas-api.cn-huabei-1.xf-yun.com/v1.1/chat"
FIXED_NOW = datetime(2026, 10, 19, 8, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def credential():
    return ModelCredential(app_id="app123", api_secret="secret456", api_key="key789")


class TestSigningHelpers:
    """Tests for the building blocks of a signature."""

    def test_http_date_format(self):
        """Dates are RFC1123 in GMT."""
        assert format_http_date(FIXED_NOW) == "Mon, 19 Oct 2026 08:00:00 GMT"

    def test_http_date_converts_to_gmt(self):
        """Offsets are normalized to GMT."""
        beijing = timezone(timedelta(hours=8))
        moment = datetime(2026, 10, 19, 16, 0, 0, tzinfo=beijing)
        assert format_http_date(moment) == "Mon, 19 Oct 2026 08:00:00 GMT"

    def test_canonical_string(self):
        """Three lines: host, date, request line."""
        canonical = build_canonical_string(
            "maas-api.cn-huabei-1.xf-yun.com",
            "Mon, 19 Oct 2026 08:00:00 GMT",
            "get",
            "/v1.1/chat",
        )
        assert canonical == (
            "host: maas-api.cn-huabei-1.xf-yun.com\n"
            "date: Mon, 19 Oct 2026 08:00:00 GMT\n"
            "GET /v1.1/chat HTTP/1.1"
        )

    def test_authorization_is_double_base64(self):
        """The assembly itself is base64-encoded."""
        decoded = base64.b64decode(build_authorization("key789", "c2ln")).decode("utf-8")
        assert decoded == (
            'api_key="key789", algorithm="hmac-sha256", '
            'headers="host date request-line", signature="c2ln"'
        )


class TestRequestSigner:
    """Tests for RequestSigner.sign."""

    def test_fixed_vector(self, credential):
        """The signature is HMAC-SHA256 over the canonical string."""
        signed = RequestSigner().sign(credential, CHAT_URL, now=FIXED_NOW)

        canonical = (
            "host: maas-api.cn-huabei-1.xf-yun.com\n"
            "date: Mon, 19 Oct 2026 08:00:00 GMT\n"
            "GET /v1.1/chat HTTP/1.1"
        )
        expected_signature = base64.b64encode(
            hmac.new(b"secret456", canonical.encode("utf-8"), hashlib.sha256).digest()
        ).decode("ascii")

        assert signed.authorization == build_authorization("key789", expected_signature)
        assert signed.host == "maas-api.cn-huabei-1.xf-yun.com"
        assert signed.date == "Mon, 19 Oct 2026 08:00:00 GMT"
        assert signed.method == "GET"

    def test_deterministic_for_same_instant(self, credential):
        """Same inputs and clock give byte-identical output."""
        signer = RequestSigner(clock=lambda: FIXED_NOW)
        first = signer.sign(credential, CHAT_URL)
        second = signer.sign(credential, CHAT_URL)
        assert first.url == second.url
        assert first.authorization == second.authorization

    def test_fresh_for_different_instants(self, credential):
        """A different timestamp always changes the signature."""
        signer = RequestSigner()
        first = signer.sign(credential, CHAT_URL, now=FIXED_NOW)
        second = signer.sign(credential, CHAT_URL, now=FIXED_NOW + timedelta(seconds=1))
        assert first.authorization != second.authorization

    def test_method_is_part_of_signature(self, credential):
        """GET and POST on the same path sign differently."""
        signer = RequestSigner()
        get = signer.sign(credential, CHAT_URL, "GET", now=FIXED_NOW)
        post = signer.sign(credential, CHAT_URL, "POST", now=FIXED_NOW)
        assert get.authorization != post.authorization

    def test_query_uses_percent_20(self, credential):
        """Spaces are %20, never '+'."""
        signed = RequestSigner().sign(credential, CHAT_URL, now=FIXED_NOW)
        query = urlsplit(signed.url).query
        assert "%20" in query
        assert "+" not in query

    def test_query_parameters(self, credential):
        """authorization, date and host ride in the query string."""
        signed = RequestSigner().sign(credential, CHAT_URL, now=FIXED_NOW)
        parts = urlsplit(signed.url)
        params = parse_qs(parts.query)

        assert parts.scheme == "wss"
        assert parts.path == "/v1.1/chat"
        assert params["authorization"] == [signed.authorization]
        assert params["date"] == ["Mon, 19 Oct 2026 08:00:00 GMT"]
        assert params["host"] == ["maas-api.cn-huabei-1.xf-yun.com"]

    def test_port_is_part_of_host(self, credential):
        """Non-default ports are signed as host:port."""
        signed = RequestSigner().sign(credential, "http://localhost:8080/v2.1/tti", now=FIXED_NOW)
        assert signed.host == "localhost:8080"

    def test_secret_never_in_url(self, credential):
        """Only the derived signature leaves the process."""
        signed = RequestSigner().sign(credential, CHAT_URL, now=FIXED_NOW)
        assert "secret456" not in signed.url

    def test_missing_secret_raises(self):
        """Incomplete credentials fail closed."""
        with pytest.raises(ConfigurationError):
            RequestSigner().sign(ModelCredential(api_key="k"), CHAT_URL, now=FIXED_NOW)

    def test_missing_host_raises(self, credential):
        """A URL without a host cannot be signed."""
        with pytest.raises(ConfigurationError):
            RequestSigner().sign(credential, "/v1.1/chat", now=FIXED_NOW)
