# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Domain exception hierarchy for the service layer.

Purpose: Provide HTTP-agnostic domain exceptions that carry enough context for
the API layer (or a global exception handler) to translate them into proper
HTTP responses. Service code should raise these instead of ``HTTPException``
so that it stays decoupled from any web framework.

Every error carries a machine-readable ``code`` next to the human-readable
``detail`` so clients can branch on the failure without parsing text.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base domain exception that carries an HTTP-equivalent status code.

    All service-layer error conditions should be expressed as subclasses
    of this class.  The global exception handler registered in ``main.py``
    translates these into JSON error responses automatically.
    """

    default_status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        detail: str,
        code: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(detail)
        self.detail = detail
        self.code = code or self.default_code
        self.status_code = (
            status_code if status_code is not None else self.default_status_code
        )


class AuthError(ServiceError):
    """Raised when the caller credential is missing or invalid (HTTP 401)."""

    default_status_code = 401
    default_code = "AUTH_REQUIRED"


class ValidationError(ServiceError):
    """Raised when the caller provides invalid or missing input (HTTP 400)."""

    default_status_code = 400
    default_code = "INVALID_BODY"


class MethodNotAllowedError(ServiceError):
    """Raised for HTTP methods the endpoint does not serve (HTTP 405)."""

    default_status_code = 405
    default_code = "METHOD_NOT_ALLOWED"


class ConfigurationError(ServiceError):
    """Raised when required provider configuration is missing (HTTP 400)."""

    default_status_code = 400
    default_code = "CONFIGURATION_ERROR"


class PersistenceError(ServiceError):
    """Raised when the backing store cannot be read (HTTP 500)."""

    default_status_code = 500
    default_code = "PERSISTENCE_ERROR"


class UpstreamError(ServiceError):
    """Raised when a call to an upstream LLM provider fails (HTTP 502)."""

    default_status_code = 502
    default_code = "UPSTREAM_ERROR"

    def __init__(self, detail: str, upstream_status: int | None = None):
        super().__init__(detail)
        self.upstream_status = upstream_status


class InternalError(ServiceError):
    """Raised for unexpected failures inside the gateway (HTTP 500)."""

    default_status_code = 500
    default_code = "INTERNAL_ERROR"


_UPSTREAM_MARKERS = ("api error", "upstream")


def map_exception(exc: Exception) -> ServiceError:
    """Translate any exception into a ServiceError for the response boundary."""
    if isinstance(exc, ServiceError):
        return exc
    message = str(exc) or exc.__class__.__name__
    if any(marker in message.lower() for marker in _UPSTREAM_MARKERS):
        return UpstreamError(message)
    return InternalError(message)
