"""Command-line interface for building workspace library units."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Mapping, Optional, Sequence

from dotenv import load_dotenv

from aware_rollup.bundle.normalize import load_options_file, load_target_options
from aware_rollup.bundle.runner import BuildResult, WatchSession
from aware_rollup.errors import ConfigurationError
from aware_rollup.executor import run_executor
from aware_rollup.schemas.options import RollupExecutorOptions
from aware_rollup.workspace import ExecutorContext, WorkspaceGraph

logger = logging.getLogger(__name__)

PROJECT_FILE = "project.json"
DEFAULT_GRAPH = "graph.json"


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "build":
        return _handle_build(args)

    parser.error(f"Unknown command '{args.command}'")
    return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="aware-rollup", description="Rollup build orchestration for library units.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="Bundle a library unit and write its package.json.")
    build.add_argument("--project-name", required=True)
    build.add_argument("--graph", help=f"Workspace graph JSON (default: <workspace-root>/{DEFAULT_GRAPH}).")
    source = build.add_mutually_exclusive_group()
    source.add_argument("--options", help="JSON or YAML file holding the build options.")
    source.add_argument("--project-json", help="project.json to read the build target from.")
    build.add_argument("--target", default="build")
    build.add_argument("--configuration")
    build.add_argument("--format", action="append", choices=["esm", "cjs", "umd"], help="Output format (repeatable).")
    build.add_argument("--watch", action="store_true")
    build.add_argument("--workspace-root")
    build.add_argument("--verbose", action="store_true")
    return parser


def _handle_build(args: argparse.Namespace) -> int:
    workspace = _resolve_workspace(args.workspace_root)
    _load_local_env(workspace)
    _configure_logging(args.verbose)

    try:
        graph = WorkspaceGraph.load(_resolve_path(args.graph or DEFAULT_GRAPH, workspace))
        options = _load_options(args, graph, workspace)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        _print_json({"success": False, "error": str(exc)})
        return 1

    context = ExecutorContext(
        root=workspace,
        project_name=args.project_name,
        graph=graph,
        target_name=args.target,
        configuration_name=args.configuration,
        is_verbose=args.verbose,
    )
    try:
        outcome = run_executor(options, context)
        if isinstance(outcome, WatchSession):
            return _consume_watch(outcome)
    except OSError as exc:
        logger.error("Failed to write build output: %s", exc)
        _print_json({"success": False, "error": str(exc)})
        return 1
    _print_json(outcome.to_dict())
    return 0 if outcome.success else 1


def _consume_watch(session: WatchSession) -> int:
    last: Optional[BuildResult] = None
    try:
        with session:
            for result in session:
                last = result
                _print_json(result.to_dict())
    except KeyboardInterrupt:
        logger.info("Stopped watching %s", session.project_name)
    return 0 if last is None or last.success else 1


def _load_options(args: argparse.Namespace, graph: WorkspaceGraph, workspace: Path) -> RollupExecutorOptions:
    if args.options:
        options = load_options_file(_resolve_path(args.options, workspace))
    else:
        if args.project_json:
            project_json = _resolve_path(args.project_json, workspace)
        else:
            project_json = workspace / graph.project(args.project_name).root / PROJECT_FILE
        options = load_target_options(project_json, args.target, args.configuration)

    updates: dict[str, object] = {}
    if args.format:
        updates["format"] = list(dict.fromkeys(args.format))
    if args.watch:
        updates["watch"] = True
    return options.model_copy(update=updates) if updates else options


def _load_local_env(workspace: Path) -> None:
    """Load a workspace-local .env (NODE_ENV and friends) if present."""

    env_file = workspace / ".env"
    if env_file.exists():
        load_dotenv(env_file)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s" if verbose else "%(message)s",
    )


def _resolve_workspace(value: Optional[str]) -> Path:
    return Path(value).resolve() if value else Path.cwd()


def _resolve_path(value: str, workspace: Path) -> Path:
    path = Path(value)
    if not path.is_absolute():
        path = workspace / path
    return path.resolve()


def _print_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, indent=2, default=str))
