"""
Backend Package

FastAPI application for accounts, sync and the vendor relay.
"""

from subscript_gateway.backend.app import create_app
from subscript_gateway.backend.relay import VendorRelay
from subscript_gateway.backend.service import (
    AuthGatewayService,
    HandlerError,
    InvalidRequestError,
    UnauthorizedError,
    UnknownUserError,
    UsernameTakenError,
    WrongPasswordError,
    hash_password,
    parse_token,
)

__all__ = [
    "AuthGatewayService",
    "HandlerError",
    "InvalidRequestError",
    "UnauthorizedError",
    "UnknownUserError",
    "UsernameTakenError",
    "VendorRelay",
    "WrongPasswordError",
    "create_app",
    "hash_password",
    "parse_token",
]
