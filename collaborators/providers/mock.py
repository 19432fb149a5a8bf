"""
Mock LLM Provider
=================

Deterministic mock provider for testing.

GUARANTEES:
- Scripted replies are returned in order
- Without a script, the same prompt always yields the same reply
- Explicit failure modes can be triggered
- No external dependencies
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Union
import asyncio
import hashlib
import json

from .base import (
    LLMProvider,
    ProviderVersion,
    ProviderResponse,
    ProviderErrorCode,
    InvocationParams,
)


Reply = Union[str, ProviderErrorCode]
Responder = Callable[[str, InvocationParams], Reply]


class MockProvider(LLMProvider):
    """
    Deterministic mock provider.

    A reply may be a string (success) or a ProviderErrorCode (failure).
    Replies come from, in priority order: failure_mode, the script queue,
    the responder callable, then a hash-derived default.
    """

    def __init__(
        self,
        script: Optional[Iterable[Reply]] = None,
        responder: Optional[Responder] = None,
        failure_mode: Optional[ProviderErrorCode] = None,
        latency_ms: float = 0.0
    ):
        self._script: List[Reply] = list(script or [])
        self._responder = responder
        self._failure_mode = failure_mode
        self._latency_ms = latency_ms
        self._version = ProviderVersion(
            provider_id="mock",
            model_id="mock-deterministic-v1",
            api_version="1.0.0",
        )
        self.prompts: List[str] = []

    @property
    def provider_id(self) -> str:
        return "mock"

    def get_version(self) -> ProviderVersion:
        return self._version

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    async def invoke(
        self,
        prompt: str,
        params: InvocationParams
    ) -> ProviderResponse:
        invoked_at = datetime.now(timezone.utc)
        self.prompts.append(prompt)
        if self._latency_ms:
            await asyncio.sleep(self._latency_ms / 1000.0)

        reply = self._next_reply(prompt, params)
        if isinstance(reply, ProviderErrorCode):
            return ProviderResponse(
                success=False,
                error_code=reply,
                error_message=f"Mock provider configured to fail: {reply.value}",
                provider_version=self._version,
                invoked_at=invoked_at,
                latency_ms=self._latency_ms,
                temperature_used=params.temperature,
            )
        return ProviderResponse(
            success=True,
            content=reply,
            provider_version=self._version,
            invoked_at=invoked_at,
            latency_ms=self._latency_ms,
            temperature_used=params.temperature,
        )

    def _next_reply(self, prompt: str, params: InvocationParams) -> Reply:
        if self._failure_mode is not None:
            return self._failure_mode
        if self._script:
            return self._script.pop(0)
        if self._responder is not None:
            return self._responder(prompt, params)
        return self._deterministic_reply(prompt, params)

    @staticmethod
    def _deterministic_reply(prompt: str, params: InvocationParams) -> str:
        """
        Hash-derived reply. Without a schema it is plain prose; with one,
        every schema property gets a value of its declared type (enum
        properties pick a member by hash).
        """
        content_hash = hashlib.sha256(prompt.encode()).hexdigest()[:16]
        if params.json_schema is None:
            return f"Mock segment {content_hash}."
        reply = {}
        for name, field_schema in params.json_schema.get("properties", {}).items():
            kind = field_schema.get("type")
            if "enum" in field_schema:
                reply[name] = field_schema["enum"][int(content_hash, 16) % len(field_schema["enum"])]
            elif kind == "boolean":
                reply[name] = True
            elif kind in ("number", "integer"):
                reply[name] = 0.8
            else:
                reply[name] = f"mock {content_hash}"
        return json.dumps(reply, sort_keys=True)
