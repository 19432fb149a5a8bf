"""
Model Persistence
=================

Versioned JSON snapshot of a trajectory model and its dataset stats,
plus the in-process store that publishes the active snapshot.

RECORD SHAPE:
    {
      "type": "neuro-symbolic-model",
      "version": "2.1.0",
      "timestamp": "<ISO-8601>",
      "alphabet": [...],
      "trajectory": [{from: {to: p}}, ...],
      "stats": {...}
    }

LOADING RULES:
1. The type discriminator is checked first
2. The whole record is decoded and validated before anything is returned
3. Any violation raises ModelFormatError; nothing is partially applied
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, date, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union
import json
import logging
import re
import threading

from .contracts.base import EventAlphabet, ModelFormatError, TrajectoryEngineError
from .contracts.events import DatasetStats, utc_now
from .trajectory.defaults import build_default_model
from .trajectory.model import TrajectoryModel


logger = logging.getLogger(__name__)

RECORD_TYPE = "neuro-symbolic-model"
FORMAT_VERSION = "2.1.0"
SUPPORTED_MAJOR_VERSIONS = frozenset({1, 2})

_SEMVER = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")


class RecordEncoder(json.JSONEncoder):
    """
    JSON encoder for engine records.

    RULES:
    1. Dates are ISO 8601 strings
    2. Enums use their .value
    3. Tuples and frozensets become lists (frozensets sorted)
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        return super().default(obj)


@dataclass(frozen=True)
class ModelSnapshot:
    """
    Immutable pairing of a trajectory model with the stats it came from.

    Runs capture one snapshot when they start and keep it to the end.
    """
    model: TrajectoryModel
    stats: DatasetStats
    version: str = FORMAT_VERSION
    created_at: Optional[datetime] = None
    source: str = "default"

    @property
    def alphabet(self) -> EventAlphabet:
        return self.model.alphabet


def default_snapshot(
    alphabet: Optional[EventAlphabet] = None,
    bins: Optional[int] = None
) -> ModelSnapshot:
    alphabet = alphabet or EventAlphabet.standard()
    model = build_default_model(alphabet) if bins is None else build_default_model(alphabet, bins)
    return ModelSnapshot(
        model=model,
        stats=DatasetStats.empty(alphabet.labels),
        created_at=utc_now(),
        source="default",
    )


# =============================================================================
# ENCODE / DECODE
# =============================================================================

def encode_record(snapshot: ModelSnapshot) -> Dict[str, Any]:
    created_at = snapshot.created_at or utc_now()
    return {
        "type": RECORD_TYPE,
        "version": FORMAT_VERSION,
        "timestamp": created_at.isoformat(),
        "alphabet": list(snapshot.model.alphabet.labels),
        "trajectory": snapshot.model.to_dict(),
        "stats": snapshot.stats.to_dict(),
    }


def decode_record(data: Any) -> ModelSnapshot:
    """Validate and decode a saved record. Raises ModelFormatError."""
    if not isinstance(data, Mapping):
        raise ModelFormatError("Saved model must be a JSON object")
    if data.get("type") != RECORD_TYPE:
        raise ModelFormatError(
            f"Unknown record type {data.get('type')!r}; expected {RECORD_TYPE!r}"
        )

    version = data.get("version")
    match = _SEMVER.match(version) if isinstance(version, str) else None
    if match is None:
        raise ModelFormatError(f"Invalid version string: {version!r}")
    if int(match.group(1)) not in SUPPORTED_MAJOR_VERSIONS:
        raise ModelFormatError(f"Unsupported record version {version}")

    created_at = _parse_timestamp(data.get("timestamp"))

    # Older records stored the matrices under "matrices" and had no alphabet.
    trajectory = data.get("trajectory", data.get("matrices"))
    if not isinstance(trajectory, list) or not trajectory:
        raise ModelFormatError("Record has no trajectory matrices")

    try:
        alphabet = _decode_alphabet(data.get("alphabet"), trajectory)
        model = TrajectoryModel.from_dict(alphabet, trajectory)
    except (TrajectoryEngineError, KeyError, TypeError, ValueError) as e:
        raise ModelFormatError(f"Invalid trajectory: {e}") from e

    stats_data = data.get("stats")
    if not isinstance(stats_data, Mapping):
        raise ModelFormatError("Record has no stats block")
    try:
        stats = DatasetStats.from_dict(stats_data)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ModelFormatError(f"Invalid stats: {e}") from e
    for path in stats.discovered_paths:
        unknown = [l for l in path.sequence if not alphabet.contains(l)]
        if unknown:
            raise ModelFormatError(f"Path {path.path_id} uses unknown labels {unknown}")

    return ModelSnapshot(
        model=model,
        stats=stats,
        version=version,
        created_at=created_at,
        source="loaded",
    )


def _decode_alphabet(raw: Any, trajectory: list) -> EventAlphabet:
    if raw is None:
        first = trajectory[0]
        if not isinstance(first, Mapping):
            raise ModelFormatError("Cannot infer alphabet from trajectory")
        return EventAlphabet(first.keys())
    if not isinstance(raw, list) or not all(isinstance(l, str) for l in raw):
        raise ModelFormatError("alphabet must be a list of strings")
    return EventAlphabet(raw)


def _parse_timestamp(raw: Any) -> datetime:
    if not isinstance(raw, str):
        raise ModelFormatError("Record timestamp must be an ISO-8601 string")
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as e:
        raise ModelFormatError(f"Invalid timestamp {raw!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# FILES
# =============================================================================

def save_model(path: Union[str, Path], snapshot: ModelSnapshot) -> Path:
    """Write a snapshot record. The file is replaced atomically."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_suffix(target.suffix + ".tmp")
    tmp.write_text(json.dumps(encode_record(snapshot), cls=RecordEncoder, indent=2), encoding="utf-8")
    tmp.replace(target)
    logger.info("Saved %d-bin model to %s", snapshot.model.bins, target)
    return target


def load_model(path: Union[str, Path]) -> ModelSnapshot:
    """Read and validate a snapshot record."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ModelFormatError(f"Cannot read model file {path}: {e}") from e
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ModelFormatError(f"Model file {path} is not valid JSON: {e}") from e
    return decode_record(data)


# =============================================================================
# ACTIVE MODEL STORE
# =============================================================================

class ModelStore:
    """
    Holds the active snapshot.

    publish() is a single reference swap under a lock. Readers call
    current() once at run start and keep that snapshot, so in-flight runs
    never observe a half-replaced model.
    """

    def __init__(self, initial: Optional[ModelSnapshot] = None):
        self._lock = threading.Lock()
        self._snapshot = initial or default_snapshot()
        self._generation = 0

    def current(self) -> ModelSnapshot:
        return self._snapshot

    @property
    def generation(self) -> int:
        return self._generation

    def publish(self, snapshot: ModelSnapshot) -> ModelSnapshot:
        """Swap in a new snapshot; returns the one it replaced."""
        with self._lock:
            previous = self._snapshot
            self._snapshot = snapshot
            self._generation += 1
        logger.info(
            "Published %s model (%d bins, %d labels, generation %d)",
            snapshot.source, snapshot.model.bins, snapshot.alphabet.size, self._generation
        )
        return previous

    def load_file(self, path: Union[str, Path]) -> ModelSnapshot:
        """Validate a record from disk, then publish it."""
        snapshot = load_model(path)
        self.publish(snapshot)
        return snapshot
