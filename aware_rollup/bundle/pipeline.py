"""Per-format rollup pipeline composition."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..errors import ConfigurationError
from ..workspace import DependentProject
from .config import BabelCompiler, BuildConfiguration, Format, SwcCompiler
from .entries import scan_entry_points
from .externals import ExternalPredicate
from .utils import class_name

logger = logging.getLogger(__name__)

FILE_EXTENSIONS = [".js", ".jsx", ".ts", ".tsx"]
ASYNC_TO_PROMISES_PLUGIN = "babel-plugin-transform-async-to-promises"


@dataclass(frozen=True, slots=True)
class JsImport:
    """Option value rendered as an imported binding instead of JSON."""

    module: str
    export: str = "default"


@dataclass(frozen=True, slots=True)
class Stage:
    """One rollup plugin invocation: ``<export of module>(options)``."""

    name: str
    module: str
    options: Mapping[str, Any] = field(default_factory=dict)
    export: str = "default"


@dataclass(slots=True)
class OutputOptions:
    format: Format
    dir: Path
    name: str
    entry_file_names: str
    chunk_file_names: str


@dataclass(slots=True)
class RollupOptions:
    input: Union[Path, Dict[str, Path]]
    output: OutputOptions
    external: ExternalPredicate
    plugins: List[Stage]

    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.plugins]

    def stage(self, name: str) -> Optional[Stage]:
        return next((stage for stage in self.plugins if stage.name == name), None)


@dataclass(slots=True)
class ComposedPipeline:
    configs: List[RollupOptions]
    inputs: Dict[str, Path]


def compose_pipeline(
    config: BuildConfiguration,
    externals: ExternalPredicate,
    *,
    project_name: str,
    dependencies: Sequence[DependentProject] = (),
    npm_deps: Sequence[str] = (),
    tsconfig: Optional[Mapping[str, Any]] = None,
) -> ComposedPipeline:
    """Build one rollup configuration per requested format, in format order."""

    external = externals.union(npm_deps)
    inputs: Dict[str, Path] = {}
    configs: List[RollupOptions] = []
    for fmt in config.formats:
        options = RollupOptions(
            input=_input(config),
            output=OutputOptions(
                format=fmt,
                dir=config.output_path,
                name=class_name(project_name),
                entry_file_names=f"[name].{fmt.extension}",
                chunk_file_names=f"[name].{fmt.extension}",
            ),
            external=external,
            plugins=compose_stages(config, fmt, dependencies=dependencies, tsconfig=tsconfig or {}),
        )
        options = apply_overrides(config, options)
        configs.append(options)
        inputs.update(scan_entry_points(config.main))
        logger.debug("Composed %s pipeline: %s", fmt.value, ", ".join(options.stage_names()))
    return ComposedPipeline(configs=configs, inputs=inputs)


def compose_stages(
    config: BuildConfiguration,
    fmt: Format,
    *,
    dependencies: Sequence[DependentProject] = (),
    tsconfig: Mapping[str, Any],
) -> List[Stage]:
    compiler = config.compiler
    stages: List[Stage] = [
        Stage("copy", "rollup-plugin-copy", {"targets": _copy_targets(config)}),
        Stage("image", "@rollup/plugin-image"),
        Stage("json", "@rollup/plugin-json"),
    ]
    if compiler.requires_type_check_stage:
        stages.append(
            Stage(
                "typescript",
                "rollup-plugin-typescript2",
                {
                    "check": True,
                    "tsconfig": str(config.ts_config),
                    "tsconfigOverride": {
                        "compilerOptions": create_ts_compiler_options(config, tsconfig, dependencies),
                    },
                },
            )
        )
    stages.extend(
        [
            Stage("peer-deps-external", "rollup-plugin-peer-deps-external", {"packageJsonPath": str(config.package_json)}),
            Stage(
                "postcss",
                "rollup-plugin-postcss",
                {
                    "inject": True,
                    "extract": config.css.extract,
                    "autoModules": True,
                    "plugins": [JsImport("autoprefixer")],
                    "use": {"less": {"javascriptEnabled": config.css.javascript_enabled}},
                },
            ),
            Stage("node-resolve", "@rollup/plugin-node-resolve", {"preferBuiltins": True, "extensions": FILE_EXTENSIONS}),
        ]
    )
    if isinstance(compiler, SwcCompiler):
        stages.append(Stage("swc", "rollup-plugin-swc3", {"tsconfig": str(config.ts_config)}, export="swc"))
    elif isinstance(compiler, BabelCompiler):
        stages.append(_babel_stage(config, compiler, fmt))
    stages.append(Stage("commonjs", "@rollup/plugin-commonjs"))
    stages.append(Stage("analyze", "rollup-plugin-analyzer", {"summaryOnly": True}))
    return stages


def create_ts_compiler_options(
    config: BuildConfiguration,
    tsconfig: Mapping[str, Any],
    dependencies: Sequence[DependentProject],
) -> Dict[str, Any]:
    compiler_options: Dict[str, Any] = {
        "rootDir": str(config.project_root),
        "allowJs": False,
        "declaration": True,
        "paths": compute_compiler_option_paths(config.workspace_root, tsconfig, dependencies),
    }
    module = str((tsconfig.get("compilerOptions") or {}).get("module", "")).lower()
    if module == "commonjs":
        compiler_options["module"] = "ESNext"
    return compiler_options


def compute_compiler_option_paths(
    workspace_root: Path,
    tsconfig: Mapping[str, Any],
    dependencies: Sequence[DependentProject],
) -> Dict[str, List[str]]:
    """Point workspace library imports at their built output instead of their sources."""

    paths: Dict[str, List[str]] = {
        key: list(value) for key, value in ((tsconfig.get("compilerOptions") or {}).get("paths") or {}).items()
    }
    for dep in dependencies:
        if dep.kind != "lib" or dep.project is None or not dep.project.output_path:
            continue
        output = (workspace_root / dep.project.output_path).as_posix()
        paths[dep.name] = [output]
        paths[f"{dep.name}/*"] = [f"{output}/*"]
    return paths


def apply_overrides(config: BuildConfiguration, options: RollupOptions) -> RollupOptions:
    current = options
    for override in config.overrides:
        result = override(current)
        if not isinstance(result, RollupOptions):
            name = getattr(override, "__qualname__", repr(override))
            raise ConfigurationError(f"Rollup config override {name} returned {type(result).__name__}, expected RollupOptions")
        current = result
    return current


def _babel_stage(config: BuildConfiguration, compiler: BabelCompiler, fmt: Format) -> Stage:
    # async-to-promises is only needed when the output is not an ES module
    plugins = [] if fmt is Format.ESM else [ASYNC_TO_PROMISES_PLUGIN]
    return Stage(
        "babel",
        "@rollup/plugin-babel",
        {
            "caller": {"isNxPackage": True, "supportsStaticESM": True, "isModern": True},
            "cwd": str(config.source_root),
            "rootMode": compiler.root_mode,
            "babelrc": True,
            "extensions": FILE_EXTENSIONS,
            "babelHelpers": compiler.babel_helpers,
            "skipPreflightCheck": True,
            "exclude": "node_modules/**",
            "plugins": plugins,
        },
        export="getBabelInputPlugin",
    )


def _copy_targets(config: BuildConfiguration) -> List[Dict[str, str]]:
    return [
        {
            "src": (asset.input / asset.glob).as_posix(),
            "dest": (config.output_path / asset.output).as_posix(),
        }
        for asset in config.assets
    ]


def _input(config: BuildConfiguration) -> Union[Path, Dict[str, Path]]:
    if config.output_file_name:
        return {Path(config.output_file_name).stem: config.main}
    return config.main
