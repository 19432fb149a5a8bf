"""
Collaborators Package
=====================

External-interface boundary of the trajectory engine: the classifier,
generator, verifier and evaluator contracts, their LLM-backed
implementations, prompt templates and providers.
"""

from .contracts import (
    Classifier,
    Generator,
    Verifier,
    Evaluator,
    Generation,
    Verdict,
    Evaluation,
)
from .llm import (
    LLMClassifier,
    LLMGenerator,
    LLMVerifier,
    LLMEvaluator,
    build_collaborators,
    parse_json_reply,
)
from .prompts import CanonicalPrompt, PromptTemplates

__all__ = [
    'Classifier', 'Generator', 'Verifier', 'Evaluator',
    'Generation', 'Verdict', 'Evaluation',
    'LLMClassifier', 'LLMGenerator', 'LLMVerifier', 'LLMEvaluator',
    'build_collaborators', 'parse_json_reply',
    'CanonicalPrompt', 'PromptTemplates',
]
