"""
Story Segmentation

Splits a story into sentence-like units, then into contiguous groups
that approximate a target segment count.
"""

from __future__ import annotations
from typing import List
import math
import re


_SENTENCE = re.compile(r"[^.!?]+[.!?]+")


def split_sentences(text: str) -> List[str]:
    """
    Sentence-like units ending in terminal punctuation.

    A trailing fragment without punctuation is kept as its own unit, so
    text with no terminal punctuation at all is a single unit.
    """
    units = []
    end = 0
    for match in _SENTENCE.finditer(text):
        unit = match.group(0).strip()
        if unit:
            units.append(unit)
        end = match.end()
    tail = text[end:].strip()
    if tail:
        units.append(tail)
    return units


def segment_story(text: str, segments: int) -> List[str]:
    """
    Group sentences into at most `segments` contiguous chunks.

    Chunk size is ceil(sentences / segments). Stories with fewer sentences
    than segments yield one chunk per sentence; positions past the end
    yield empty strings so the result always has `segments` entries.
    """
    if segments < 1:
        raise ValueError("segments must be >= 1")
    sentences = split_sentences(text)
    chunk = max(1, math.ceil(len(sentences) / segments))
    result = []
    for t in range(segments):
        result.append(" ".join(sentences[t * chunk:(t + 1) * chunk]))
    return result
