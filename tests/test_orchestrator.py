"""Tests for component wiring, the advice flow and user-facing error messages."""

import asyncio
import json

import pytest

from subscript_gateway.audit import AuditLogger
from subscript_gateway.config import Settings, get_settings, validate_all_settings
from subscript_gateway.models.gateway import FinanceSnapshot, ModelCredential, SubscriptionLine
from subscript_gateway.orchestrator import FinanceAdviceFlow, create_gateway_components
from subscript_gateway.services.errors import (
    AuthError,
    ConfigurationError,
    DataError,
    ParseError,
    TransportError,
    VendorError,
    user_message,
)
from subscript_gateway.services.inference import build_finance_advice_prompt


CHAT_URL = "wss://maas-api.cn-huabei-1.xf-yun.com/v1.1/chat"

SNAPSHOT = FinanceSnapshot(
    monthly_total=96.5,
    yearly_total=1158.0,
    category_totals={"娱乐": 60.0, "工具": 36.5},
    subscriptions=[
        SubscriptionLine(name="Netflix", category_label="娱乐", price=60, cycle="monthly"),
        SubscriptionLine(name="Notion", category_label="工具", price=438, cycle="yearly"),
    ],
    base_salary=12000,
    commission=1500,
    monthly_budget=300,
)


class ScriptedConnection:
    def __init__(self, deltas):
        self.sent = []
        self.frames = [
            json.dumps({
                "header": {"code": 0, "status": 2 if i == len(deltas) - 1 else 1},
                "payload": {"choices": {"text": [{"content": delta}]}},
            })
            for i, delta in enumerate(deltas)
        ]

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def recv(self):
        return self.frames.pop(0)

    async def close(self):
        pass


class TestFinanceAdvice:
    """Tests for the finance advice flow."""

    def test_prompt_contains_figures(self):
        """The advisor sees totals, income and every subscription."""
        prompt = build_finance_advice_prompt(SNAPSHOT)

        assert "Total Subscriptions:** 2" in prompt
        assert "96.50 CNY" in prompt
        assert "1158.00 CNY" in prompt
        assert "娱乐: 60.00" in prompt
        assert "- Netflix (娱乐): 60 CNY/每月" in prompt
        assert "- Notion (工具): 438 CNY/每年" in prompt
        assert "简体中文" in prompt

    def test_empty_snapshot(self):
        """No subscriptions still builds a prompt."""
        prompt = build_finance_advice_prompt(FinanceSnapshot())
        assert "(no subscriptions)" in prompt
        assert "Spending by Category:** None" in prompt

    def test_stream_advice(self):
        """Advice deltas arrive in order and the prompt is sent once."""
        connection = ScriptedConnection(["建议一", "建议二"])

        async def connect(url):
            return connection

        flow = FinanceAdviceFlow(
            ModelCredential(app_id="app", api_secret="s", api_key="k"),
            endpoint=CHAT_URL,
            connect=connect,
        )

        async def collect():
            return [delta async for delta in flow.stream_advice(SNAPSHOT)]

        assert asyncio.run(collect()) == ["建议一", "建议二"]
        assert len(connection.sent) == 1
        message = connection.sent[0]["payload"]["message"]["text"][0]
        assert message["role"] == "user"
        assert "Netflix" in message["content"]

    def test_start_advice_callbacks(self):
        """The callback form reports tokens then completion."""
        connection = ScriptedConnection(["a", "b"])
        tokens, completed, errors = [], [], []

        async def connect(url):
            return connection

        flow = FinanceAdviceFlow(
            ModelCredential(app_id="app", api_secret="s", api_key="k"),
            endpoint=CHAT_URL,
            connect=connect,
        )

        async def scenario():
            flow.start_advice(
                SNAPSHOT,
                tokens.append,
                lambda: completed.append(True),
                errors.append,
            )
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert tokens == ["a", "b"]
        assert completed == [True]
        assert errors == []

    def test_start_advice_without_credential(self):
        """A missing credential is delivered through on_error."""
        errors = []
        flow = FinanceAdviceFlow(ModelCredential(), endpoint=CHAT_URL)

        async def scenario():
            flow.start_advice(SNAPSHOT, lambda delta: None, lambda: None, errors.append)
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert len(errors) == 1
        assert "not configured" in errors[0]
        assert "settings" in errors[0]


class TestComponents:
    """Tests for create_gateway_components."""

    def test_wiring_from_environment(self, monkeypatch):
        """Components are built from settings without any I/O."""
        monkeypatch.setenv("SPARK_CHAT_APP_ID", "chat-app")
        monkeypatch.setenv("SPARK_CHAT_API_SECRET", "chat-secret")
        monkeypatch.setenv("SPARK_CHAT_API_KEY", "chat-key")
        monkeypatch.setenv("SYNC_BASE_URL", "https://sync.example.com")

        components = create_gateway_components(Settings())

        session = components.advice.new_session()
        assert session.state.value == "idle"
        assert isinstance(components.audit_logger, AuditLogger)

    def test_missing_sync_url_surfaces_on_use(self, monkeypatch):
        """An unconfigured sync server is reported when used, not at startup."""
        monkeypatch.delenv("SYNC_BASE_URL", raising=False)
        components = create_gateway_components(Settings())

        with pytest.raises(ConfigurationError):
            asyncio.run(components.sync.login("alice", "pw"))


class TestSettingsCheck:
    """Tests for the startup configuration report."""

    def test_reports_missing_capabilities(self, monkeypatch):
        """Configured capabilities pass, the rest carry a reason."""
        for prefix in ("SPARK_CHAT", "SPARK_VISION", "SPARK_IMAGE"):
            for field in ("APP_ID", "API_SECRET", "API_KEY"):
                monkeypatch.delenv(f"{prefix}_{field}", raising=False)
        monkeypatch.setenv("SPARK_CHAT_APP_ID", "chat-app")
        monkeypatch.setenv("SPARK_CHAT_API_SECRET", "chat-secret")
        monkeypatch.setenv("SPARK_CHAT_API_KEY", "chat-key")
        monkeypatch.setenv("BACKEND_STORE_URL", "memory://")
        monkeypatch.delenv("RELAY_BASE_URL", raising=False)

        get_settings.cache_clear()
        try:
            status = validate_all_settings()
        finally:
            get_settings.cache_clear()

        assert status["chat"] is True
        assert status["vision"] is False
        assert "api_key" in status["vision_error"]
        assert status["backend"] is True
        assert status["relay"] is False


class TestUserMessage:
    """Tests for mapping error families to UI messages."""

    @pytest.mark.parametrize("error, fragment", [
        (ConfigurationError("no relay"), "settings"),
        (AuthError("expired"), "sign in"),
        (TransportError("timed out."), "try again"),
        (VendorError("quota", 11200), "11200"),
        (DataError("bad backup"), "bad backup"),
    ])
    def test_families(self, error, fragment):
        """Each family gets its own prompt."""
        assert fragment in user_message(error)

    def test_parse_error_asks_for_clarification(self):
        """Parse failures never show raw model output."""
        message = user_message(ParseError("Cannot parse JSON: {garbage"))
        assert "garbage" not in message
        assert "amount" in message

    def test_vendor_error_format(self):
        """Vendor errors keep the code and message."""
        error = VendorError("invalid app id", 10313)
        assert str(error) == "API Error: 10313 - invalid app id"
        assert error.vendor_message == "invalid app id"
