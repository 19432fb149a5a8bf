"""
Canonical Prompt Generation
===========================

Pure functions that render the collaborator prompts.

INVARIANT: Same task inputs -> same prompt_hash

Prompts are reproducible from their inputs alone; nothing here reads
run state or configuration.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence
import hashlib
import re


CLASSIFY_SNIPPET_CHARS = 500
CONTEXT_CHARS = 2000
EVALUATION_CHARS = 8000
IMMEDIATE_SENTENCES = 3

LABEL_DEFINITIONS: Dict[str, str] = {
    "Introduction": "Establishes setting/characters.",
    "Inciting_Incident": "Disrupts the status quo.",
    "Rising_Action": "Escalates tension, complications arise.",
    "Conflict": "Active struggle or disagreement.",
    "Revelation": "A twist that reframes what came before.",
    "Climax": "The turning point or highest tension.",
    "Falling_Action": "Consequences of the climax.",
    "Resolution": "Conclusion, settling of events.",
    "Story_End": "Definitive closure of the story.",
    "Dialogue": "Characters speaking to one another.",
    "Description": "Sensory world-building or internal monologue.",
}

VERIFY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "match": {"type": "boolean", "description": "True if the text entails the Intended Label hypothesis."},
        "confidence": {"type": "number", "description": "Entailment score (0.0 - 1.0)"},
        "reasoning": {"type": "string", "description": "Brief analysis of why it fits or fails."},
    },
    "required": ["match", "confidence", "reasoning"],
}

EVALUATE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "coherenceScore": {"type": "number", "description": "Score 1-10 for global coherence"},
        "creativityScore": {"type": "number", "description": "Score 1-10 for creativity/novelty"},
        "flowScore": {"type": "number", "description": "Score 1-10 for pacing and structure"},
        "structuralAdherence": {
            "type": "number",
            "description": "Score 0-100 for how well the story follows a standard narrative arc",
        },
        "critique": {"type": "string", "description": "A paragraph on strengths and weaknesses."},
    },
    "required": ["coherenceScore", "creativityScore", "flowScore", "structuralAdherence", "critique"],
}


def classify_schema(labels: Sequence[str]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {"label": {"type": "string", "enum": list(labels)}},
        "required": ["label"],
    }


@dataclass(frozen=True)
class CanonicalPrompt:
    """
    Frozen prompt with hash for deterministic tracking.

    INVARIANT: Same task_type + inputs -> same prompt_hash
    """
    task_type: str
    prompt_text: str
    prompt_hash: str

    @staticmethod
    def create(task_type: str, prompt_text: str) -> CanonicalPrompt:
        return CanonicalPrompt(
            task_type=task_type,
            prompt_text=prompt_text,
            prompt_hash=hashlib.sha256(prompt_text.encode()).hexdigest(),
        )


def _last_sentences(text: str, count: int = IMMEDIATE_SENTENCES) -> str:
    sentences = re.split(r"(?<=[.!?])\s+", text.strip())
    return " ".join(sentences[-count:])


class PromptTemplates:
    """Prompt templates for each collaborator task."""

    @staticmethod
    def classification(segment: str, labels: Sequence[str]) -> CanonicalPrompt:
        text = f"""Task: Narrative Structural Classification.
Story Segment: "{segment[:CLASSIFY_SNIPPET_CHARS]}"

Classify this segment into exactly ONE of these categories:
{', '.join(labels)}

Return strictly a JSON object: {{ "label": "CATEGORY_NAME" }}"""
        return CanonicalPrompt.create("classification", text)

    @staticmethod
    def generation(
        context: str,
        target_label: str,
        position: int,
        total_length: int,
        foreshadow: Optional[str] = None
    ) -> CanonicalPrompt:
        snippet = context if len(context) <= CONTEXT_CHARS else "..." + context[-CONTEXT_CHARS:]
        immediate = _last_sentences(context)
        foreshadow_line = ""
        if foreshadow:
            foreshadow_line = (
                f'\n5. FORESHADOWING: The NEXT segment after this will be a "{foreshadow}". '
                "End this segment in a way that naturally leads into that tone/action."
            )
        text = f"""Role: Expert Novelist.
Task: Write the next continuous segment of the story.

Current Narrative Arc Position: Step {position + 1}/{total_length}
Target Structural Event: {target_label}

Previous Context (Summary):
"{snippet}"

IMMEDIATE CONTEXT (Connect to this):
"{immediate}"

Instructions:
1. FLOW: Begin by directly continuing the action or thought from the IMMEDIATE CONTEXT. Do not start an unrelated scene unless the event requires a scene change.
2. SHOW, DON'T TELL: Use sensory details suitable for a "{target_label}".
3. DIVERSITY: Do not repeat phrases or sentence structures from the immediate context. Avoid starting sentences with "Suddenly" or "Then".
4. LENGTH: Write approximately 75-90 words.{foreshadow_line}

Output: Return ONLY the new story text."""
        return CanonicalPrompt.create("generation", text)

    @staticmethod
    def verification(segment: str, target_label: str, labels: Sequence[str]) -> CanonicalPrompt:
        definitions = "\n".join(
            f"- {label}: {LABEL_DEFINITIONS.get(label, 'Structural role ' + label + '.')}"
            for label in labels
        )
        text = f"""Task: Narrative Logic Verification (NLI).

Premise (Generated Segment):
"{segment}"

Hypothesis (Target Event):
The segment functions as a "{target_label}".

Definitions for Verification:
{definitions}

Instructions:
Evaluate if the Premise structurally fulfills the Hypothesis.
- High Confidence (0.8-1.0): Clear match.
- Low Confidence (0.0-0.5): Ambiguous or mismatched.

Return strict JSON."""
        return CanonicalPrompt.create("verification", text)

    @staticmethod
    def evaluation(full_text: str) -> CanonicalPrompt:
        text = f"""Act as an Expert Literary Critic.

Analyze the following short story:
"{full_text[:EVALUATION_CHARS]}"

Evaluate based on:
1. Global Coherence: Do the events connect logically?
2. Narrative Arc: Is there a clear beginning, middle, and end?
3. Creativity: Is the prose engaging and original?
4. Flow: Does the story move naturally between paragraphs? (Penalty for jagged transitions).
5. Structural Adherence: Does the story show a setup, inciting incident, rising action, climax and resolution? (0-100).

Return a JSON evaluation."""
        return CanonicalPrompt.create("evaluation", text)
