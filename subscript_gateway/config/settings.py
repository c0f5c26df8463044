"""
Configuration Management for SubScript Gateway

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here, but components never
call get_settings() themselves. The orchestrator reads settings once and
passes explicit values (credentials, URLs, timeouts) into each constructor.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from subscript_gateway.models.gateway import ModelCredential


DEFAULT_CHAT_ENDPOINT = "wss://maas-api.cn-huabei-1.xf-yun.com/v1.1/chat"
DEFAULT_VISION_ENDPOINT = "wss://maas-api.cn-huabei-1.xf-yun.com/v1.1/chat"
DEFAULT_IMAGE_ENDPOINT = "https://maas-api.cn-huabei-1.xf-yun.com/v2.1/tti"
DEFAULT_VENDOR_HOST = "maas-api.cn-huabei-1.xf-yun.com"


class _ModelSettings(BaseSettings):
    """Fields shared by every vendor capability (chat, vision, image)."""

    model_config = SettingsConfigDict(extra="ignore")

    # Credentials default to empty: a missing credential is reported as a
    # ConfigurationError when the capability is used, not at startup.
    app_id: str = Field(default="", description="Vendor application id")
    api_secret: str = Field(default="", description="Vendor API secret (HMAC key)")
    api_key: str = Field(default="", description="Vendor API key id")
    domain: str = Field(default="", description="Model routing tag")

    def credential(self) -> ModelCredential:
        """Build the immutable credential for this capability."""
        return ModelCredential(
            app_id=self.app_id,
            api_secret=self.api_secret,
            api_key=self.api_key,
            domain=self.domain,
        )


class ChatModelSettings(_ModelSettings):
    """Streaming chat model configuration."""

    model_config = SettingsConfigDict(env_prefix="SPARK_CHAT_", extra="ignore")

    endpoint: str = Field(default=DEFAULT_CHAT_ENDPOINT)
    default_domain: str = Field(
        default="xdeepseekv3",
        description="Domain used when the credential carries none"
    )
    temperature: float = Field(default=0.5, ge=0.0, le=1.0)
    max_tokens: int = Field(default=4096, ge=1, le=8192)
    receive_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Longest wait for a single frame"
    )


class VisionModelSettings(_ModelSettings):
    """Vision (OCR) model configuration."""

    model_config = SettingsConfigDict(env_prefix="SPARK_VISION_", extra="ignore")

    endpoint: str = Field(default=DEFAULT_VISION_ENDPOINT)
    default_domain: str = Field(default="xqwen2d5vl7b")
    temperature: float = Field(default=0.1, ge=0.0, le=1.0)
    max_tokens: int = Field(default=2048, ge=1, le=8192)


class ImageModelSettings(_ModelSettings):
    """Text-to-image model configuration."""

    model_config = SettingsConfigDict(env_prefix="SPARK_IMAGE_", extra="ignore")

    endpoint: str = Field(default=DEFAULT_IMAGE_ENDPOINT)
    default_domain: str = Field(default="xopsdxl")
    timeout_seconds: float = Field(default=60.0, gt=0)


class RelaySettings(BaseSettings):
    """Relay that forwards browser-originated calls to the vendor."""

    model_config = SettingsConfigDict(env_prefix="RELAY_", extra="ignore")

    base_url: str = Field(
        default="",
        description="Relay (worker) base URL, e.g. https://relay.example.com"
    )


class SyncSettings(BaseSettings):
    """Cloud sync / backup configuration."""

    model_config = SettingsConfigDict(env_prefix="SYNC_", extra="ignore")

    base_url: str = Field(default="", description="Backend base URL")
    timeout_seconds: float = Field(default=15.0, gt=0, le=120)
    pantry_id: str = Field(default="", description="Optional Pantry basket id")


class BackendSettings(BaseSettings):
    """Auth/sync backend configuration."""

    model_config = SettingsConfigDict(env_prefix="BACKEND_", extra="ignore")

    store_url: str = Field(
        default="",
        description="Key-value store: memory:// or file:///path/to/kv.json"
    )
    session_ttl_days: int = Field(default=7, ge=1, le=365)
    min_username_length: int = Field(default=3, ge=1)
    audit_retention_days: int = Field(default=30, ge=1)
    relay_target_host: str = Field(default=DEFAULT_VENDOR_HOST)
    relay_timeout_seconds: float = Field(default=60.0, gt=0)

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_ttl_days * 24 * 60 * 60


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Below this many characters the OCR stage is treated as "nothing legible"
    min_ocr_chars: int = Field(default=5, ge=1)


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def chat(self) -> ChatModelSettings:
        return ChatModelSettings()

    @property
    def vision(self) -> VisionModelSettings:
        return VisionModelSettings()

    @property
    def image(self) -> ImageModelSettings:
        return ImageModelSettings()

    @property
    def relay(self) -> RelaySettings:
        return RelaySettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def backend(self) -> BackendSettings:
        return BackendSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Check which capabilities are fully configured.

    Returns a dict of {setting_name: is_valid} plus "<name>_error"
    entries explaining what is missing. Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("chat", "vision", "image"):
        try:
            credential = getattr(settings, name).credential()
            results[name] = credential.is_complete
            if not credential.is_complete:
                results[f"{name}_error"] = "app_id, api_secret and api_key are required"
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    try:
        results["relay"] = bool(settings.relay.base_url)
        if not results["relay"]:
            results["relay_error"] = "RELAY_BASE_URL is not set"
    except Exception as e:
        results["relay"] = False
        results["relay_error"] = str(e)

    try:
        results["sync"] = bool(settings.sync.base_url)
        if not results["sync"]:
            results["sync_error"] = "SYNC_BASE_URL is not set"
    except Exception as e:
        results["sync"] = False
        results["sync_error"] = str(e)

    try:
        results["backend"] = bool(settings.backend.store_url)
        if not results["backend"]:
            results["backend_error"] = "BACKEND_STORE_URL is not set"
    except Exception as e:
        results["backend"] = False
        results["backend_error"] = str(e)

    return results
