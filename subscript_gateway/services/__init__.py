"""Services package."""

from subscript_gateway.services.errors import (
    AuthError,
    ConfigurationError,
    DataError,
    GatewayError,
    ParseError,
    TransportError,
    VendorError,
    user_message,
)
from subscript_gateway.services.storage import (
    AuditStorageInterface,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueAuditStorage,
    KeyValueStore,
    StorageError,
    StoreNotConfiguredError,
    create_store,
)
from subscript_gateway.services.signing import RequestSigner
from subscript_gateway.services.inference import (
    StreamingInferenceSession,
    StreamTimeoutError,
    build_finance_advice_prompt,
)
from subscript_gateway.services.ocr import (
    DocumentUnderstandingPipeline,
    NoLegibleTextError,
    parse_model_json,
)
from subscript_gateway.services.image import (
    EmptyImageDataError,
    ImageSynthesisClient,
    ImageSynthesisHTTPError,
)
from subscript_gateway.services.sync import (
    PantryBackupClient,
    ServerUnreachableError,
    SyncAuthError,
    SyncClient,
    SyncRejectedError,
    SyncTimeoutError,
    validate_backup_payload,
)

__all__ = [
    # Errors
    "AuthError",
    "ConfigurationError",
    "DataError",
    "GatewayError",
    "ParseError",
    "TransportError",
    "VendorError",
    "user_message",
    # Storage
    "AuditStorageInterface",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueAuditStorage",
    "KeyValueStore",
    "StorageError",
    "StoreNotConfiguredError",
    "create_store",
    # Signing and streaming
    "RequestSigner",
    "StreamingInferenceSession",
    "StreamTimeoutError",
    "build_finance_advice_prompt",
    # Document understanding
    "DocumentUnderstandingPipeline",
    "NoLegibleTextError",
    "parse_model_json",
    # Image synthesis
    "EmptyImageDataError",
    "ImageSynthesisClient",
    "ImageSynthesisHTTPError",
    # Sync
    "PantryBackupClient",
    "ServerUnreachableError",
    "SyncAuthError",
    "SyncClient",
    "SyncRejectedError",
    "SyncTimeoutError",
    "validate_backup_payload",
]
