"""
LLM Providers Package
=====================

Provider implementations for LLM invocation.

Available providers:
- MockProvider: Deterministic scripted provider for testing
- OllamaProvider: Local Ollama server over HTTP
"""

from .base import (
    LLMProvider,
    ProviderVersion,
    ProviderResponse,
    ProviderErrorCode,
    InvocationParams,
    UNREACHABLE_CODES,
)
from .mock import MockProvider
from .ollama import OllamaProvider

__all__ = [
    'LLMProvider',
    'ProviderVersion',
    'ProviderResponse',
    'ProviderErrorCode',
    'InvocationParams',
    'UNREACHABLE_CODES',
    'MockProvider',
    'OllamaProvider',
]
