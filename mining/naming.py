"""
Archetype Naming

Ordered (predicate, name) rule table applied to a discovered label
sequence. The first matching rule names the archetype; sequences that
match nothing get FALLBACK_NAME.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Sequence, Tuple

from planner.contracts import EventLabel as E


FALLBACK_NAME = "Uncharted Structure"

CLOSING_LABELS = frozenset({E.RESOLUTION.value, E.STORY_END.value, E.FALLING_ACTION.value})
TENSION_LABELS = frozenset({E.CONFLICT.value, E.CLIMAX.value, E.RISING_ACTION.value})
ACTIVE_OPENINGS = frozenset({E.CONFLICT.value, E.RISING_ACTION.value, E.INCITING_INCIDENT.value})


Predicate = Callable[[Tuple[str, ...]], bool]


@dataclass(frozen=True)
class NamingRule:
    name: str
    matches: Predicate
    description: str = ""


def _twist_ending(seq: Tuple[str, ...]) -> bool:
    tail = seq[len(seq) * 2 // 3:]
    return E.REVELATION.value in tail


def _conflict_gauntlet(seq: Tuple[str, ...]) -> bool:
    return seq.count(E.CONFLICT.value) >= 3


def _dialogue_driven(seq: Tuple[str, ...]) -> bool:
    return seq.count(E.DIALOGUE.value) / len(seq) >= 0.3


def _cliffhanger(seq: Tuple[str, ...]) -> bool:
    return seq[-1] in TENSION_LABELS


def _classic_arc(seq: Tuple[str, ...]) -> bool:
    return E.CLIMAX.value in seq and seq[-1] in CLOSING_LABELS


def _in_medias_res(seq: Tuple[str, ...]) -> bool:
    return seq[0] in ACTIVE_OPENINGS


def _slow_burn(seq: Tuple[str, ...]) -> bool:
    head = seq[:max(1, len(seq) // 2)]
    return not any(label in (E.CONFLICT.value, E.CLIMAX.value) for label in head)


NAMING_RULES: Tuple[NamingRule, ...] = (
    NamingRule("Twist Ending", _twist_ending, "Revelation in the final third"),
    NamingRule("Conflict Gauntlet", _conflict_gauntlet, "Three or more conflicts"),
    NamingRule("Dialogue-Driven", _dialogue_driven, "At least 30% dialogue"),
    NamingRule("Cliffhanger", _cliffhanger, "Ends on unresolved tension"),
    NamingRule("Classic Arc", _classic_arc, "Climax followed by a closing ending"),
    NamingRule("In Medias Res", _in_medias_res, "Opens in the middle of the action"),
    NamingRule("Slow Burn", _slow_burn, "No conflict or climax in the first half"),
)


def name_archetype(
    sequence: Sequence[str],
    rules: Sequence[NamingRule] = NAMING_RULES
) -> str:
    seq = tuple(sequence)
    if not seq:
        return FALLBACK_NAME
    for rule in rules:
        if rule.matches(seq):
            return rule.name
    return FALLBACK_NAME
