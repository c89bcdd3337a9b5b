"""CLI entrypoints for infraplan commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

from .catalog import ModuleCatalog, load_catalog
from .config import EngineConfig, load_config
from .differ import diff_plans
from .errors import InfraPlanError
from .logging import configure_logging, get_logger
from .models import FeatureSignal
from .pipeline import Pipeline, PipelineResult, PipelineState
from .reporting import render_markdown
from .signals import load_signals, loads_signals
from .stores import PlanStore

_STAGE_TARGETS: Dict[str, PipelineState] = {
    "classify": PipelineState.CLASSIFIED,
    "build": PipelineState.GRAPH_BUILT,
    "validate": PipelineState.VALIDATED,
    "plan": PipelineState.PLAN_READY,
    "diff": PipelineState.PLAN_READY,
}

logger = get_logger("cli")


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_engine_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "signals",
        help="Path to the feature-signal document (JSON or YAML); use '-' for stdin.",
    )
    parser.add_argument(
        "--catalog",
        default=None,
        help="Module catalog document; overrides the 'catalog' setting in .infraplan.yml.",
    )
    parser.add_argument(
        "--config",
        default=".",
        help="Path to .infraplan.yml or the directory containing it (defaults to current directory).",
    )
    parser.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="[MODULE.]KEY=VALUE",
        help="Override a global or per-module parameter; may be repeated.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="infraplan",
        description="Classify an application and plan its infrastructure modules.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write diagnostics to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    classify_parser = subparsers.add_parser(
        "classify",
        help="Select the architecture pattern for a signal document.",
    )
    _add_verbose_option(classify_parser, suppress_default=True)
    _add_engine_options(classify_parser)

    build_parser = subparsers.add_parser(
        "build",
        help="Classify and expand the pattern into a resource graph.",
    )
    _add_verbose_option(build_parser, suppress_default=True)
    _add_engine_options(build_parser)

    validate_parser = subparsers.add_parser(
        "validate",
        help="Build the resource graph and run policy rules against it.",
    )
    _add_verbose_option(validate_parser, suppress_default=True)
    _add_engine_options(validate_parser)

    plan_parser = subparsers.add_parser(
        "plan",
        help="Run the full pipeline and emit the tiered provisioning plan.",
    )
    _add_verbose_option(plan_parser, suppress_default=True)
    _add_engine_options(plan_parser)
    plan_parser.add_argument(
        "--format",
        choices=("json", "markdown"),
        default="json",
        help="Output format for the plan document.",
    )
    plan_parser.add_argument(
        "--save",
        action="store_true",
        help="Persist the plan so later runs can be diffed against it.",
    )

    diff_parser = subparsers.add_parser(
        "diff",
        help="Compare a fresh plan with the last saved plan.",
    )
    _add_verbose_option(diff_parser, suppress_default=True)
    _add_engine_options(diff_parser)
    diff_parser.add_argument(
        "--format",
        choices=("json", "markdown"),
        default="json",
        help="Output format; markdown renders the fresh plan with a change section.",
    )

    clear_parser = subparsers.add_parser(
        "clear",
        help="Forget the saved plan so the next diff reports every module as new.",
    )
    _add_verbose_option(clear_parser, suppress_default=True)
    clear_parser.add_argument(
        "--config",
        default=".",
        help="Path to .infraplan.yml or the directory containing it.",
    )

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")
    serve_parser.add_argument(
        "--catalog",
        default=None,
        help="Module catalog document; overrides the 'catalog' setting in .infraplan.yml.",
    )
    serve_parser.add_argument(
        "--config",
        default=".",
        help="Path to .infraplan.yml or the directory containing it.",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for infraplan commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    try:
        config = load_config(Path(args.config))
        if args.command == "clear":
            _clear_saved_plan(config)
            return
        catalog = _load_catalog(args, config)
    except InfraPlanError as exc:
        parser.exit(1, f"infraplan configuration failed: {exc}\n")

    if args.command == "serve":
        from .service import run_service

        run_service(catalog, config, host=args.host, port=args.port)
        return

    try:
        _apply_param_overrides(config, args.param)
        signals = _read_signals(args.signals)
        pipeline = Pipeline.from_config(catalog, config)
    except InfraPlanError as exc:
        parser.exit(1, f"infraplan {args.command} failed: {exc}\n")
    except ValueError as exc:
        parser.exit(2, f"infraplan: {exc}\n")

    result = pipeline.run(signals, until=_STAGE_TARGETS[args.command])
    if result.failure is not None:
        parser.exit(
            1,
            f"infraplan {result.failure.stage.value} failed: {result.failure.error}\n"
            "Run with --verbose for more details.\n",
        )

    if args.command == "classify":
        _emit({"pattern": result.pattern.value if result.pattern else None})
    elif args.command in {"build", "validate"}:
        _emit(_stage_document(result, args.command))
    elif args.command == "plan":
        assert result.plan is not None
        if args.save:
            store = PlanStore(config.store_path)
            store.store(result.plan)
            store.persist()
            logger.info("Saved plan to %s", config.store_path)
        if args.format == "markdown":
            sys.stdout.write(render_markdown(result.plan))
        else:
            _emit(result.plan.to_dict())
    elif args.command == "diff":
        assert result.plan is not None
        previous = PlanStore(config.store_path).get()
        if previous is None:
            logger.warning("No saved plan at %s; every module is reported as new", config.store_path)
        diff = diff_plans(previous, result.plan)
        if args.format == "markdown":
            sys.stdout.write(render_markdown(result.plan, diff=diff))
        else:
            _emit(diff.to_dict())
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _clear_saved_plan(config: EngineConfig) -> None:
    path = config.store_path
    if not path.exists():
        logger.info("No saved plan at %s", path)
        return
    PlanStore(path).clear()
    logger.info("Cleared saved plan %s", path)


def _load_catalog(args: argparse.Namespace, config: EngineConfig) -> ModuleCatalog:
    if args.catalog:
        return load_catalog(Path(args.catalog))
    if config.catalog is not None:
        return load_catalog(config.catalog)
    raise InfraPlanError(
        "No module catalog configured; pass --catalog or set 'catalog' in .infraplan.yml"
    )


def _read_signals(source: str) -> List[FeatureSignal]:
    if source == "-":
        return loads_signals(sys.stdin.read())
    return load_signals(Path(source))


def _apply_param_overrides(config: EngineConfig, overrides: List[str]) -> None:
    for raw in overrides:
        key, value = _parse_param(raw)
        module_id, sep, name = key.rpartition(".")
        if sep:
            config.modules.setdefault(module_id, {})[name] = value
        else:
            config.parameters[name] = value


def _parse_param(raw: str) -> Tuple[str, Any]:
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise ValueError(f"--param expects KEY=VALUE, got '{raw}'")
    try:
        parsed = yaml.safe_load(value) if value else ""
    except yaml.YAMLError:
        parsed = value
    return key.strip(), parsed


def _stage_document(result: PipelineResult, command: str) -> Dict[str, Any]:
    document = result.to_dict()
    document.pop("signals", None)
    if command == "build":
        document.pop("validation", None)
    return document


def _emit(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


if __name__ == "__main__":
    main(sys.argv[1:])
