"""
Trajectory Engine CLI
=====================

Commands:
    train CORPUS --out MODEL     mine a corpus into a saved model
    plan                         dry-run a plan (no collaborators called)
    run                          generate a story through the collaborators
    inspect MODEL                summarize a saved model

Usage:
    trajectory-engine --model model.json plan --seed 7
    trajectory-engine train stories.json --out model.json --provider mock
"""

from __future__ import annotations
from dataclasses import replace
from typing import List, Optional
import argparse
import asyncio
import json
import logging
import sys

from .config import EngineConfig
from .constraints import ConstraintLayer
from .contracts import TrajectoryEngineError
from .observability import configure_logging, default_metrics
from .selector import Selector, plan_path
from .storage import ModelSnapshot, RecordEncoder, default_snapshot, load_model, save_model
from .trajectory import progress_label


logger = logging.getLogger(__name__)


def _load_snapshot(args, config: EngineConfig) -> ModelSnapshot:
    path = args.model or config.model_path
    if path:
        return load_model(path)
    return default_snapshot(config.trajectory.build_alphabet(), config.trajectory.bins)


def _build_provider(config: EngineConfig, name: Optional[str]):
    from collaborators.providers import MockProvider, OllamaProvider

    provider = name or config.provider.provider
    if provider == "mock":
        return MockProvider()
    if provider == "ollama":
        return OllamaProvider(
            host=config.provider.host,
            model=config.provider.model,
            timeout=config.provider.timeout_seconds,
            num_ctx=config.provider.num_ctx,
        )
    raise ValueError(f"Unknown provider: {provider}")


def _find_override(snapshot: ModelSnapshot, path_id: Optional[str]):
    if not path_id:
        return None
    override = snapshot.stats.find_path(path_id)
    if override is None:
        raise ValueError(f"Unknown archetype {path_id}")
    return override


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_train(args, config: EngineConfig) -> int:
    from collaborators.llm import LLMClassifier
    from mining.miner import ArchetypeMiner

    mining = config.mining
    if args.segments:
        mining = replace(mining, segments=args.segments)
    if args.sample_limit:
        mining = replace(mining, sample_limit=args.sample_limit)
    if args.sampling:
        mining = replace(mining, sampling=args.sampling)
    if args.concurrency:
        mining = replace(mining, max_concurrent_stories=args.concurrency)

    alphabet = config.trajectory.build_alphabet()
    provider = _build_provider(config, args.provider)
    miner = ArchetypeMiner(LLMClassifier(provider, alphabet), alphabet, mining)

    def on_progress(percent: int, message: str) -> None:
        print(f"[{percent:3d}%] {message}")

    async def train():
        try:
            return await miner.mine_file(args.corpus, on_progress=on_progress)
        finally:
            await provider.aclose()

    result = asyncio.run(train())
    save_model(args.out, result.snapshot())
    report = result.stats.report
    print(f"[PASS] Trained {result.model.bins}-bin model from {result.stats.count} stories -> {args.out}")
    print(
        f"[INFO] classified={report.segments_classified} skipped={report.segments_skipped} "
        f"coerced={report.labels_coerced} failed={report.classifier_failures}"
    )
    for path in result.stats.discovered_paths[:5]:
        print(f"       {path.frequency:>4} ({path.percentage:5.1f}%) {path.name}: {' > '.join(path.sequence)}")
    return 0


def cmd_plan(args, config: EngineConfig) -> int:
    snapshot = _load_snapshot(args, config)
    if args.unconstrained:
        constraints = ConstraintLayer.unconstrained()
    else:
        constraints = config.constraints.build_layer(snapshot.alphabet)
    selector = Selector(snapshot.model, constraints, start_label=config.selector.start_label)
    decisions = plan_path(
        selector,
        args.length or config.execution.total_length,
        override=_find_override(snapshot, args.override),
        seed=args.seed if args.seed is not None else config.execution.random_seed,
    )
    if args.json:
        print(json.dumps([
            {"position": d.position, "label": d.label, "mode": d.mode.value} for d in decisions
        ], indent=2))
        return 0
    for d in decisions:
        print(f"{d.position:>3} | {d.mode.value:<8} | {d.label}")
    return 0


def cmd_run(args, config: EngineConfig) -> int:
    from collaborators.llm import LLMEvaluator, LLMGenerator, LLMVerifier
    from execution import ExecutionCoordinator, RunStatus, run_comparison
    from execution.cancellation import CancellationToken
    from .storage import ModelStore

    snapshot = _load_snapshot(args, config)
    store = ModelStore(snapshot)
    execution = config.execution
    if args.length:
        execution = replace(execution, total_length=args.length)
    provider = _build_provider(config, args.provider)
    generator = LLMGenerator(provider)
    verifier = LLMVerifier(provider, snapshot.alphabet)
    evaluator = LLMEvaluator(provider)
    override = _find_override(snapshot, args.override)
    constraints = config.constraints.build_layer(snapshot.alphabet)
    cancel = CancellationToken()

    def on_step(step) -> None:
        mark = "ok" if step.verified else "best-effort"
        print(f"[*] {step.index:>3} {step.label:<18} retries={step.retry_count} {mark}")

    async def execute():
        try:
            if args.compare:
                return await run_comparison(
                    store, generator, verifier, evaluator,
                    constraints=constraints, config=execution, selector_config=config.selector,
                    override=override, cancel=cancel, seed=args.seed,
                )
            coordinator = ExecutionCoordinator(
                store, generator, verifier, evaluator,
                constraints=constraints, config=execution, selector_config=config.selector,
            )
            return await coordinator.run(
                override=override, cancel=cancel, seed=args.seed, on_step=on_step
            )
        finally:
            await provider.aclose()

    try:
        outcome = asyncio.run(execute())
    except KeyboardInterrupt:
        cancel.cancel("interrupted")
        print("[!] Interrupted.")
        return 130

    payload = outcome.to_dict()
    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            json.dump(payload, f, cls=RecordEncoder, indent=2)
        print(f"[*] Wrote result to {args.out}")

    results = [outcome.constrained, outcome.baseline] if args.compare else [outcome]
    for result in results:
        print(f"[{result.status.value.upper()}] {result.variant}: {' > '.join(result.labels)}")
        if result.metrics:
            print(f"       {json.dumps(result.metrics.to_dict())}")
        if result.error:
            print(f"       error: {result.error}")
    return 0 if all(r.status is RunStatus.COMPLETED for r in results) else 1


def cmd_inspect(args, config: EngineConfig) -> int:
    snapshot = load_model(args.path)
    stats = snapshot.stats
    print(f"[*] {args.path}: version {snapshot.version}, created {snapshot.created_at}")
    print(f"    alphabet ({snapshot.alphabet.size}): {', '.join(snapshot.alphabet.labels)}")
    print(f"    bins: {snapshot.model.bins}; stories: {stats.count}")
    if args.bin is not None:
        if not 0 <= args.bin < snapshot.model.bins:
            print(f"[FAIL] Bin {args.bin} out of range")
            return 1
        print(f"\nBIN {args.bin} ({progress_label(args.bin, snapshot.model.bins)})")
        print(json.dumps(snapshot.model.matrix(args.bin).to_dict(), indent=2))
    print("\nDISCOVERED PATHS")
    print("================")
    if not stats.discovered_paths:
        print("(none)")
    for path in stats.discovered_paths:
        print(f"{path.path_id} {path.frequency:>4} ({path.percentage:5.1f}%) {path.name}")
    return 0


# =============================================================================
# ENTRY POINT
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Narrative Trajectory Engine")
    parser.add_argument("--model", default=None, help="Saved model to plan or run against")
    parser.add_argument("--log-level", default=None, help="Logging level")

    subparsers = parser.add_subparsers(dest="command")

    train = subparsers.add_parser("train", help="Mine a corpus into a saved model")
    train.add_argument("corpus", help="JSON array or NDJSON of {\"text\": ...} records")
    train.add_argument("--out", required=True, help="Where to write the model record")
    train.add_argument("--segments", type=int, default=None)
    train.add_argument("--sample-limit", type=int, default=None)
    train.add_argument("--sampling", choices=("sequential", "random", "strided"), default=None)
    train.add_argument("--concurrency", type=int, default=None)
    train.add_argument("--provider", choices=("ollama", "mock"), default=None)

    plan = subparsers.add_parser("plan", help="Dry-run a plan")
    plan.add_argument("--length", type=int, default=None)
    plan.add_argument("--seed", type=int, default=None)
    plan.add_argument("--override", default=None, help="Discovered path id to force")
    plan.add_argument("--unconstrained", action="store_true")
    plan.add_argument("--json", action="store_true")

    run = subparsers.add_parser("run", help="Generate a story")
    run.add_argument("--length", type=int, default=None)
    run.add_argument("--seed", type=int, default=None)
    run.add_argument("--override", default=None)
    run.add_argument("--compare", action="store_true", help="Also run an unconstrained baseline")
    run.add_argument("--provider", choices=("ollama", "mock"), default=None)
    run.add_argument("--out", default=None, help="Write the run result as JSON")

    inspect = subparsers.add_parser("inspect", help="Summarize a saved model")
    inspect.add_argument("path")
    inspect.add_argument("--bin", type=int, default=None)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = EngineConfig.from_env()
    configure_logging(args.log_level or config.log_level)

    commands = {
        "train": cmd_train,
        "plan": cmd_plan,
        "run": cmd_run,
        "inspect": cmd_inspect,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 2
    try:
        return command(args, config)
    except (TrajectoryEngineError, ValueError) as e:
        print(f"[FAIL] {e}")
        logger.debug("Command %s failed", args.command, exc_info=True)
        return 1
    finally:
        counters = {k: v for k, v in default_metrics().snapshot().items() if v}
        if counters:
            logger.info("Metrics: %s", counters)


if __name__ == "__main__":
    sys.exit(main())
