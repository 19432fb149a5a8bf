"""
Narrative Trajectory Engine: API Server
=======================================

Read-mostly HTTP surface over the active model snapshot.

Endpoints:
- GET  /health                     -> liveness and active model summary
- GET  /api/v1/model               -> alphabet, bins and dataset stats
- GET  /api/v1/model/bins/{index}  -> one transition matrix
- GET  /api/v1/archetypes          -> ranked discovered paths
- POST /api/v1/plan                -> dry-run plan (no collaborators called)
- POST /api/v1/model               -> validate and publish a saved record

Usage:
    uvicorn planner.api.server:app --reload
"""

from __future__ import annotations
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ..config import EngineConfig
from ..constraints import ConstraintLayer
from ..contracts import ModelFormatError
from ..observability import MetricsCollector, configure_logging, default_metrics
from ..selector import Selector, plan_path
from ..storage import ModelSnapshot, ModelStore, decode_record, default_snapshot
from ..trajectory import progress_label


logger = logging.getLogger(__name__)


# =============================================================================
# INFRASTRUCTURE SETUP
# =============================================================================

@dataclass
class EngineState:
    config: EngineConfig
    store: ModelStore
    metrics: MetricsCollector


engine_state: Optional[EngineState] = None


def build_state(config: EngineConfig) -> EngineState:
    """Default model for the configured alphabet, replaced by NTE_MODEL_PATH if set."""
    alphabet = config.trajectory.build_alphabet()
    store = ModelStore(default_snapshot(alphabet, config.trajectory.bins))
    if config.model_path:
        store.load_file(config.model_path)
    return EngineState(config=config, store=store, metrics=default_metrics())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the model store on startup."""
    global engine_state
    config = EngineConfig.from_env()
    configure_logging(config.log_level)
    logger.info("Initializing trajectory engine (alphabet=%s)", config.trajectory.alphabet)
    try:
        engine_state = build_state(config)
    except ModelFormatError as e:
        logger.error("Failed to load startup model %s: %s", config.model_path, e)
        raise
    logger.info("Engine initialized with %s model", engine_state.store.current().source)

    yield

    logger.info("Shutting down trajectory engine")
    engine_state = None


app = FastAPI(
    title="Narrative Trajectory Engine API",
    version="2.1.0",
    description="Planning surface for the Narrative Trajectory Engine",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def _state() -> EngineState:
    if engine_state is None:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine_state


# =============================================================================
# SCHEMAS
# =============================================================================

class PlanRequest(BaseModel):
    total_length: Optional[int] = Field(default=None, ge=1, le=500)
    override_id: Optional[str] = None
    seed: Optional[int] = None
    constrained: bool = True


class PlanDecisionOut(BaseModel):
    position: int
    label: str
    mode: str


class PlanResponse(BaseModel):
    labels: List[str]
    decisions: List[PlanDecisionOut]
    model_version: str
    override_id: Optional[str] = None


class ModelSummary(BaseModel):
    source: str
    version: str
    created_at: Optional[str]
    alphabet: List[str]
    bins: int
    stats: Dict[str, Any]


def _summary(snapshot: ModelSnapshot) -> ModelSummary:
    return ModelSummary(
        source=snapshot.source,
        version=snapshot.version,
        created_at=snapshot.created_at.isoformat() if snapshot.created_at else None,
        alphabet=list(snapshot.alphabet.labels),
        bins=snapshot.model.bins,
        stats=snapshot.stats.to_dict(),
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/health")
async def health_check():
    """System status."""
    state = _state()
    snapshot = state.store.current()
    return {
        "status": "online",
        "model_source": snapshot.source,
        "model_version": snapshot.version,
        "generation": state.store.generation,
    }


@app.get("/api/v1/model", response_model=ModelSummary)
async def get_model():
    return _summary(_state().store.current())


@app.get("/api/v1/model/bins/{index}")
async def get_bin(index: int):
    snapshot = _state().store.current()
    bins = snapshot.model.bins
    if not 0 <= index < bins:
        raise HTTPException(status_code=404, detail=f"Bin {index} out of range (model has {bins})")
    return {
        "index": index,
        "progress": progress_label(index, bins),
        "matrix": snapshot.model.matrix(index).to_dict(),
    }


@app.get("/api/v1/archetypes")
async def get_archetypes():
    stats = _state().store.current().stats
    return {
        "count": stats.count,
        "most_common_path": list(stats.most_common_path),
        "archetypes": [p.to_dict() for p in stats.discovered_paths],
    }


@app.post("/api/v1/plan", response_model=PlanResponse)
async def post_plan(request: PlanRequest):
    """
    Dry-run a full plan against the active snapshot.

    An override_id must name one of the snapshot's discovered paths.
    """
    state = _state()
    snapshot = state.store.current()
    config = state.config

    override = None
    if request.override_id:
        override = snapshot.stats.find_path(request.override_id)
        if override is None:
            raise HTTPException(status_code=404, detail=f"Unknown archetype {request.override_id}")

    if request.constrained:
        constraints = config.constraints.build_layer(snapshot.alphabet, state.metrics)
    else:
        constraints = ConstraintLayer.unconstrained()
    try:
        selector = Selector(
            snapshot.model, constraints,
            start_label=config.selector.start_label, metrics=state.metrics,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    seed = request.seed if request.seed is not None else config.execution.random_seed
    decisions = plan_path(
        selector,
        request.total_length or config.execution.total_length,
        override=override,
        seed=seed,
    )
    return PlanResponse(
        labels=[d.label for d in decisions],
        decisions=[
            PlanDecisionOut(position=d.position, label=d.label, mode=d.mode.value)
            for d in decisions
        ],
        model_version=snapshot.version,
        override_id=override.path_id if override else None,
    )


@app.post("/api/v1/model", response_model=ModelSummary)
async def post_model(record: Dict[str, Any]):
    """Validate a saved-model record and publish it. Rejected records change nothing."""
    state = _state()
    try:
        snapshot = decode_record(record)
    except ModelFormatError as e:
        raise HTTPException(status_code=422, detail=str(e))
    state.store.publish(snapshot)
    return _summary(snapshot)
