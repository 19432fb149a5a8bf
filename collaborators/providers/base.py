"""
LLM Provider Abstraction Layer
==============================

Abstract interface for the language-model backends that power the
classifier, generator, verifier and evaluator.

BOUNDARY ENFORCEMENT:
- Providers are stateless invocation handlers
- invoke() is awaited; it never raises
- Failures are explicit ProviderResponses carrying a ProviderErrorCode
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ProviderErrorCode(Enum):
    """Explicit failure codes for LLM invocations."""
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    INVALID_RESPONSE = "invalid_response"
    API_ERROR = "api_error"
    NETWORK_ERROR = "network_error"


# Codes that mean the backend could not be reached at all.
UNREACHABLE_CODES = frozenset({ProviderErrorCode.NETWORK_ERROR, ProviderErrorCode.TIMEOUT})


@dataclass(frozen=True)
class ProviderVersion:
    """Immutable provider version info."""
    provider_id: str       # "ollama" | "mock"
    model_id: str          # "mistral-small:24b"
    api_version: str


@dataclass(frozen=True)
class ProviderResponse:
    """
    Immutable response from an LLM provider.

    INVARIANT: Either (success=True, content set) or (success=False, error set)
    """
    success: bool
    content: Optional[str] = None

    error_code: Optional[ProviderErrorCode] = None
    error_message: Optional[str] = None

    provider_version: Optional[ProviderVersion] = None
    invoked_at: Optional[datetime] = None
    latency_ms: float = 0.0
    temperature_used: float = 0.0

    def __post_init__(self):
        if self.success and self.content is None:
            raise ValueError("Successful response must have content")
        if not self.success and self.error_code is None:
            raise ValueError("Failed response must have error_code")


@dataclass(frozen=True)
class InvocationParams:
    """
    Frozen invocation parameters.

    json_schema, when set, asks the backend for a strict JSON object
    matching the schema.
    """
    temperature: float = 0.0
    json_schema: Optional[Dict[str, Any]] = None
    seed: Optional[int] = None
    timeout_seconds: Optional[float] = None


class LLMProvider(ABC):
    """
    Abstract LLM provider interface.

    GUARANTEES:
    - Invocations are stateless
    - Failures are explicit ProviderResponse with error_code

    EXPLICIT FAILURE STATES:
    - TIMEOUT: Invocation exceeded its timeout
    - RATE_LIMITED: Backend rejected due to load
    - INVALID_RESPONSE: Response body couldn't be parsed
    - API_ERROR: Backend returned an error status
    - NETWORK_ERROR: Connection failed
    """

    @abstractmethod
    async def invoke(
        self,
        prompt: str,
        params: InvocationParams
    ) -> ProviderResponse:
        """
        Invoke the LLM with given prompt and parameters.

        MUST return ProviderResponse, never raise exceptions.
        """

    @abstractmethod
    def get_version(self) -> ProviderVersion:
        """Provider version info."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique provider identifier."""

    async def aclose(self) -> None:
        """Release any held connections."""
