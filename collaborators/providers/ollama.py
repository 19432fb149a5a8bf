"""
Ollama Provider

Calls a local Ollama server's /api/generate endpoint over HTTP.

PRINCIPLES:
===========
1. One non-streaming request per invocation
2. Transport and HTTP failures become ProviderErrorCodes
3. The caller owns per-call timeouts through InvocationParams
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import json
import logging
import time

import httpx

from .base import (
    LLMProvider,
    ProviderVersion,
    ProviderResponse,
    ProviderErrorCode,
    InvocationParams,
)


logger = logging.getLogger(__name__)

DEFAULT_HOST = "http://localhost:11434"
DEFAULT_MODEL = "mistral-small:24b"
DEFAULT_NUM_CTX = 8192

JSON_INSTRUCTION = (
    "\n\nIMPORTANT: You must respond strictly with a valid JSON object matching this schema:\n"
    "{schema}\n\n"
    "Do not include markdown formatting like ```json. Just return the raw JSON."
)


class OllamaProvider(LLMProvider):
    """
    Async Ollama client.

    A shared httpx.AsyncClient is created lazily unless one is injected
    (tests inject a client backed by httpx.MockTransport).
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        model: str = DEFAULT_MODEL,
        timeout: float = 120.0,
        num_ctx: int = DEFAULT_NUM_CTX,
        client: Optional[httpx.AsyncClient] = None
    ):
        self._host = host.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._num_ctx = num_ctx
        self._client = client
        self._owns_client = client is None
        self._version = ProviderVersion(
            provider_id="ollama",
            model_id=model,
            api_version="v1",
        )

    @property
    def provider_id(self) -> str:
        return "ollama"

    @property
    def endpoint(self) -> str:
        return f"{self._host}/api/generate"

    def get_version(self) -> ProviderVersion:
        return self._version

    def build_payload(self, prompt: str, params: InvocationParams) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": params.temperature,
                "num_ctx": self._num_ctx,
            },
        }
        if params.seed is not None:
            payload["options"]["seed"] = params.seed
        if params.json_schema is not None:
            payload["prompt"] = prompt + JSON_INSTRUCTION.format(
                schema=json.dumps(params.json_schema, indent=2)
            )
            payload["format"] = "json"
        return payload

    async def invoke(
        self,
        prompt: str,
        params: InvocationParams
    ) -> ProviderResponse:
        invoked_at = datetime.now(timezone.utc)
        started = time.perf_counter()
        timeout = params.timeout_seconds or self._timeout

        try:
            response = await self._get_client().post(
                self.endpoint,
                json=self.build_payload(prompt, params),
                timeout=timeout,
            )
        except httpx.TimeoutException:
            return self._failure(
                ProviderErrorCode.TIMEOUT, f"Ollama did not answer within {timeout}s",
                invoked_at, started, params
            )
        except httpx.TransportError as e:
            return self._failure(
                ProviderErrorCode.NETWORK_ERROR,
                f"Ollama connection failed at {self._host}: {e}. "
                f"Is `ollama serve` running and `{self._model}` pulled?",
                invoked_at, started, params
            )

        if response.status_code == 429:
            return self._failure(
                ProviderErrorCode.RATE_LIMITED, "Ollama rejected the request (429)",
                invoked_at, started, params
            )
        if response.status_code != 200:
            return self._failure(
                ProviderErrorCode.API_ERROR,
                f"Ollama API error ({response.status_code}): {response.text[:200]}",
                invoked_at, started, params
            )

        try:
            body = response.json()
        except ValueError as e:
            return self._failure(
                ProviderErrorCode.INVALID_RESPONSE, f"Ollama returned non-JSON body: {e}",
                invoked_at, started, params
            )
        content = body.get("response") if isinstance(body, dict) else None
        if not isinstance(content, str):
            return self._failure(
                ProviderErrorCode.INVALID_RESPONSE, "Ollama reply has no 'response' field",
                invoked_at, started, params
            )

        return ProviderResponse(
            success=True,
            content=content,
            provider_version=self._version,
            invoked_at=invoked_at,
            latency_ms=(time.perf_counter() - started) * 1000,
            temperature_used=params.temperature,
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    def _failure(
        self,
        code: ProviderErrorCode,
        message: str,
        invoked_at: datetime,
        started: float,
        params: InvocationParams
    ) -> ProviderResponse:
        logger.warning("Ollama invocation failed (%s): %s", code.value, message)
        return ProviderResponse(
            success=False,
            error_code=code,
            error_message=message,
            provider_version=self._version,
            invoked_at=invoked_at,
            latency_ms=(time.perf_counter() - started) * 1000,
            temperature_used=params.temperature,
        )
