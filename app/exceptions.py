"""
Error taxonomy for the ingestion and analytics pipeline.

Ingestion-path errors (MalformedPayload, PersistenceError) reach the HTTP
caller. Analytics-path errors (AnalysisFailure, ExternalServiceTimeout during
analysis) are recovered where they happen and only show up in logs.
"""

from __future__ import annotations

from typing import Any, Optional


class PipelineError(Exception):
    """Base class for pipeline errors."""


class MalformedPayload(PipelineError):
    """Inbound webhook data is missing the identifiers needed to persist it."""

    def __init__(self, message: str, payload: Optional[Any] = None) -> None:
        super().__init__(message)
        self.payload = payload


class PersistenceError(PipelineError):
    """The message store is unavailable or rejected a write."""


class AnalysisFailure(PipelineError):
    """The LLM call failed or returned content that could not be used."""


class ExternalServiceTimeout(PipelineError):
    """A gateway or LLM call exceeded its time bound."""


class GatewayError(PipelineError):
    """The WhatsApp gateway answered with a non-retryable error."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
