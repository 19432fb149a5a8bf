"""
Corpus Loading

Reads the raw story corpus accepted by the archetype miner.

ACCEPTED SHAPES:
1. A JSON array of objects, each with a string "text" field
2. Newline-delimited JSON, one such object per line

FAILURE SEMANTICS:
- Unreadable file, unparsable JSON, or a record without a string "text"
  -> CorpusFormatError (bad data)
- Nothing left after dropping blank texts -> EmptyCorpusError (no data)
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, Union
import json
import logging
import random

from planner.contracts import CorpusFormatError, EmptyCorpusError


logger = logging.getLogger(__name__)

SAMPLING_STRATEGIES = ("sequential", "random", "strided")


@dataclass(frozen=True)
class StoryRecord:
    """One corpus story; index is its position in the source corpus."""
    index: int
    text: str


def parse_corpus(raw: str) -> List[StoryRecord]:
    """Parse corpus text. Blank stories are dropped."""
    if not raw.strip():
        raise EmptyCorpusError("Corpus is empty")
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError:
        data = _parse_ndjson(raw)

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise CorpusFormatError(
            "Invalid format. Expected a JSON array of objects with a 'text' field"
        )

    stories: List[StoryRecord] = []
    for i, record in enumerate(data):
        if not isinstance(record, dict) or not isinstance(record.get("text"), str):
            raise CorpusFormatError(f"Record {i} is not an object with a string 'text' field")
        if record["text"].strip():
            stories.append(StoryRecord(index=i, text=record["text"]))

    if not stories:
        raise EmptyCorpusError(f"Corpus has {len(data)} records but no non-blank text")
    dropped = len(data) - len(stories)
    if dropped:
        logger.info("Dropped %d blank stories from corpus", dropped)
    return stories


def _parse_ndjson(raw: str) -> List[Any]:
    records = []
    for line_no, line in enumerate(raw.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as e:
            raise CorpusFormatError(
                f"Corpus is neither a JSON array nor NDJSON (line {line_no}: {e.msg})"
            ) from e
    return records


def load_corpus(path: Union[str, Path]) -> List[StoryRecord]:
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise CorpusFormatError(f"Failed to read corpus {path}: {e}") from e
    return parse_corpus(raw)


def sample_stories(
    stories: Sequence[StoryRecord],
    limit: int,
    strategy: str = "sequential",
    seed: Optional[int] = None
) -> Tuple[StoryRecord, ...]:
    """
    Bounded sample of the corpus, always returned in corpus order.

    sequential  first `limit` stories
    random      seeded uniform sample without replacement
    strided     evenly spaced across the whole corpus
    """
    if limit < 1:
        raise ValueError("limit must be >= 1")
    if strategy not in SAMPLING_STRATEGIES:
        raise ValueError(f"Unknown sampling strategy: {strategy}")
    if len(stories) <= limit:
        return tuple(stories)
    if strategy == "sequential":
        return tuple(stories[:limit])
    if strategy == "random":
        picked = random.Random(seed).sample(range(len(stories)), limit)
        return tuple(stories[i] for i in sorted(picked))
    step = len(stories) / limit
    return tuple(stories[int(i * step)] for i in range(limit))
