"""Entry operation: build one workspace library unit."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence, Union

from .bundle.config import ConfigOverride
from .bundle.engine import BundlerEngine, RollupNodeEngine
from .bundle.externals import resolve_externals
from .bundle.manifest import load_package_json, update_package_json
from .bundle.normalize import normalize_options, parse_options, read_tsconfig
from .bundle.pipeline import compose_pipeline
from .bundle.runner import BuildResult, WatchSession, run_batch
from .bundle.validate import validate_types
from .errors import ConfigurationError, ValidationError
from .schemas.options import RollupExecutorOptions
from .workspace import ExecutorContext, calculate_project_dependencies

logger = logging.getLogger(__name__)


def run_executor(
    raw_options: Union[RollupExecutorOptions, Mapping[str, Any]],
    context: ExecutorContext,
    *,
    engine: Optional[BundlerEngine] = None,
    overrides: Sequence[ConfigOverride] = (),
) -> Union[BuildResult, WatchSession]:
    """Build ``context.project_name`` once, or start watching it.

    Returns a :class:`BuildResult` in batch mode and a :class:`WatchSession`
    in watch mode. Configuration and type errors end the run with a failed
    result before anything is bundled.
    """

    try:
        options = raw_options if isinstance(raw_options, RollupExecutorOptions) else parse_options(raw_options)
        project = context.project
        config = normalize_options(
            options,
            context.root,
            project.source_root or project.root,
            overrides=overrides,
        )
        resolved = calculate_project_dependencies(context.graph, context.project_name, context.target_name)
        package_json = load_package_json(config.package_json)
        npm_deps = context.graph.direct_npm_dependencies(context.project_name)
        externals = resolve_externals(resolved.dependencies, package_json, config.external)
        tsconfig = read_tsconfig(config.ts_config)
        pipeline = compose_pipeline(
            config,
            externals,
            project_name=context.project_name,
            dependencies=resolved.dependencies,
            npm_deps=npm_deps,
            tsconfig=tsconfig,
        )
        if config.compiler.requires_type_validation:
            validate_types(
                workspace_root=config.workspace_root,
                project_root=config.project_root,
                ts_config=config.ts_config,
            )
    except (ConfigurationError, ValidationError) as exc:
        logger.error("%s", exc)
        return BuildResult(success=False)

    if engine is None:
        engine = RollupNodeEngine(config.workspace_root, node_env=config.node_env)

    def synthesize() -> None:
        update_package_json(
            config,
            pipeline.inputs,
            package_json,
            dependencies=resolved.dependencies,
        )

    if config.watch:
        logger.info("Watching %s for changes...", context.project_name)
        return WatchSession(
            engine,
            pipeline.configs,
            on_cycle_end=synthesize,
            project_name=context.project_name,
        )
    try:
        return run_batch(
            pipeline.configs,
            engine=engine,
            config=config,
            project_name=context.project_name,
            on_success=synthesize,
        )
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return BuildResult(success=False)
