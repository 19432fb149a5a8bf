"""
LLM-backed Collaborators
========================

Classifier, Generator, Verifier and Evaluator implemented on top of an
LLMProvider.

FAILURE HANDLING:
- A failed provider response raises CollaboratorError carrying the
  provider error code (CollaboratorUnavailableError when the backend
  could not be reached)
- An unparsable reply raises CollaboratorError with INVALID_RESPONSE
- Nothing here retries; retry policy belongs to the caller
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Sequence
import json
import logging

from planner.contracts import (
    CollaboratorError,
    CollaboratorUnavailableError,
    EventAlphabet,
    GenerationStep,
)

from .contracts import Classifier, Evaluation, Evaluator, Generation, Generator, Verdict, Verifier
from .prompts import EVALUATE_SCHEMA, VERIFY_SCHEMA, PromptTemplates, classify_schema
from .providers.base import (
    InvocationParams,
    LLMProvider,
    ProviderErrorCode,
    ProviderResponse,
    UNREACHABLE_CODES,
)


logger = logging.getLogger(__name__)

CLASSIFY_TEMPERATURE = 0.1
GENERATE_TEMPERATURE = 0.85
VERIFY_TEMPERATURE = 0.1
EVALUATE_TEMPERATURE = 0.2


def parse_json_reply(content: str) -> Dict[str, Any]:
    """Parse a JSON object reply, tolerating markdown code fences."""
    cleaned = content.replace("```json", "").replace("```", "").strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise CollaboratorError(
            f"Reply is not valid JSON: {e}", ProviderErrorCode.INVALID_RESPONSE.value
        ) from e
    if not isinstance(data, dict):
        raise CollaboratorError(
            "Reply is not a JSON object", ProviderErrorCode.INVALID_RESPONSE.value
        )
    return data


def unwrap(response: ProviderResponse, task: str) -> str:
    """Return response content or raise the matching CollaboratorError."""
    if response.success:
        return response.content
    code = response.error_code.value
    message = f"{task} failed ({code}): {response.error_message}"
    if response.error_code in UNREACHABLE_CODES:
        raise CollaboratorUnavailableError(message, code)
    raise CollaboratorError(message, code)


def _number(data: Dict[str, Any], key: str, default: Optional[float] = None) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CollaboratorError(
            f"Reply field {key!r} is not a number", ProviderErrorCode.INVALID_RESPONSE.value
        )
    return float(value)


class _ProviderBacked:
    def __init__(self, provider: LLMProvider, temperature: float):
        self._provider = provider
        self._temperature = temperature

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    async def _invoke(
        self,
        task: str,
        prompt: str,
        schema: Optional[Dict[str, Any]] = None
    ) -> str:
        params = InvocationParams(temperature=self._temperature, json_schema=schema)
        response = await self._provider.invoke(prompt, params)
        return unwrap(response, task)


class LLMClassifier(_ProviderBacked, Classifier):
    """Classifies a segment; the returned label is not checked against the alphabet."""

    def __init__(
        self,
        provider: LLMProvider,
        alphabet: Optional[EventAlphabet] = None,
        temperature: float = CLASSIFY_TEMPERATURE
    ):
        super().__init__(provider, temperature)
        self._alphabet = alphabet or EventAlphabet.standard()

    async def classify(self, text: str) -> str:
        labels = self._alphabet.labels
        prompt = PromptTemplates.classification(text, labels)
        content = await self._invoke("classification", prompt.prompt_text, classify_schema(labels))
        label = parse_json_reply(content).get("label")
        if not isinstance(label, str):
            raise CollaboratorError(
                "Classification reply has no label", ProviderErrorCode.INVALID_RESPONSE.value
            )
        return label.strip()


class LLMGenerator(_ProviderBacked, Generator):
    def __init__(self, provider: LLMProvider, temperature: float = GENERATE_TEMPERATURE):
        super().__init__(provider, temperature)

    async def generate(
        self,
        context: str,
        target_label: str,
        position: int,
        total_length: int,
        foreshadow: Optional[str] = None
    ) -> Generation:
        prompt = PromptTemplates.generation(context, target_label, position, total_length, foreshadow)
        content = await self._invoke("generation", prompt.prompt_text)
        return Generation(text=content.strip(), prompt_used=prompt.prompt_text)


class LLMVerifier(_ProviderBacked, Verifier):
    """NLI-style verifier. Confidence is clamped into [0, 1]."""

    def __init__(
        self,
        provider: LLMProvider,
        alphabet: Optional[EventAlphabet] = None,
        temperature: float = VERIFY_TEMPERATURE
    ):
        super().__init__(provider, temperature)
        self._alphabet = alphabet or EventAlphabet.standard()

    async def verify(self, text: str, target_label: str) -> Verdict:
        prompt = PromptTemplates.verification(text, target_label, self._alphabet.labels)
        data = parse_json_reply(await self._invoke("verification", prompt.prompt_text, VERIFY_SCHEMA))
        match = data.get("match")
        if not isinstance(match, bool):
            raise CollaboratorError(
                "Verification reply has no boolean 'match'",
                ProviderErrorCode.INVALID_RESPONSE.value
            )
        confidence = min(max(_number(data, "confidence", 0.0), 0.0), 1.0)
        return Verdict(verified=match, confidence=confidence, reasoning=str(data.get("reasoning", "")))


class LLMEvaluator(_ProviderBacked, Evaluator):
    def __init__(self, provider: LLMProvider, temperature: float = EVALUATE_TEMPERATURE):
        super().__init__(provider, temperature)

    async def evaluate(
        self,
        full_text: str,
        steps: Optional[Sequence[GenerationStep]] = None
    ) -> Evaluation:
        prompt = PromptTemplates.evaluation(full_text)
        data = parse_json_reply(await self._invoke("evaluation", prompt.prompt_text, EVALUATE_SCHEMA))
        adherence = data.get("structuralAdherence")
        return Evaluation(
            coherence_score=_number(data, "coherenceScore"),
            creativity_score=_number(data, "creativityScore"),
            flow_score=_number(data, "flowScore"),
            structural_adherence=_number(data, "structuralAdherence") if adherence is not None else None,
            critique=str(data.get("critique", "")),
        )


def build_collaborators(provider: LLMProvider, alphabet: Optional[EventAlphabet] = None):
    """All four collaborators sharing one provider."""
    return (
        LLMClassifier(provider, alphabet),
        LLMGenerator(provider),
        LLMVerifier(provider, alphabet),
        LLMEvaluator(provider),
    )
