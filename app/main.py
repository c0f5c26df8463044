"""
Backend Entry Point for SubScript Gateway

Serves the auth/sync API and the vendor relay:

    uvicorn app.main:app --host 0.0.0.0 --port 8787

or simply `python app/main.py`.

The key-value store comes from BACKEND_STORE_URL (memory:// or
file:///path/kv.json). Without it the process still starts, and every
/api route answers 500 with a configuration message.
"""

import structlog
import uvicorn
from fastapi import FastAPI

from subscript_gateway.audit import AuditLogger, configure_logging
from subscript_gateway.backend import create_app
from subscript_gateway.config import get_settings, validate_all_settings
from subscript_gateway.services.storage import KeyValueAuditStorage, create_store


logger = structlog.get_logger("subscript_gateway.main")


def build_app() -> FastAPI:
    """Read settings once and assemble the backend."""
    settings = get_settings()
    configure_logging(settings.app.log_level)

    backend = settings.backend
    store = create_store(backend.store_url)

    if store is None:
        logger.warning("store_not_configured", hint="set BACKEND_STORE_URL")
        audit_logger = AuditLogger()  # Local-only logging
    else:
        retention_seconds = backend.audit_retention_days * 24 * 60 * 60
        audit_logger = AuditLogger(KeyValueAuditStorage(store, retention_seconds))

    status = validate_all_settings()
    missing = sorted(name for name, ok in status.items() if ok is False)
    logger.info(
        "backend_starting",
        environment=settings.app.app_environment,
        relay_target=backend.relay_target_host,
        unconfigured=missing,
    )
    return create_app(store=store, settings=backend, audit_logger=audit_logger)


app = build_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8787)
