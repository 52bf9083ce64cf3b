"""Resolve raw executor options into a BuildConfiguration."""

from __future__ import annotations

import importlib
import importlib.util
import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..errors import ConfigurationError
from ..schemas.options import AssetGlobPattern, RollupExecutorOptions
from .config import (
    COMPILERS,
    AssetCopyRule,
    BuildConfiguration,
    ConfigOverride,
    CssOptions,
    Format,
)

logger = logging.getLogger(__name__)

LEGACY_MODULE_KINDS = {"commonjs", "amd", "umd"}


def strip_json_comments(text: str) -> str:
    """Drop ``//`` and ``/* */`` comments and trailing commas outside string literals."""

    out: list[str] = []
    index, length = 0, len(text)
    while index < length:
        char = text[index]
        if char == '"':
            end = index + 1
            while end < length and text[end] != '"':
                end += 2 if text[end] == "\\" else 1
            out.append(text[index : end + 1])
            index = end + 1
            continue
        if text.startswith("//", index):
            end = text.find("\n", index)
            index = length if end == -1 else end
            continue
        if text.startswith("/*", index):
            end = text.find("*/", index + 2)
            index = length if end == -1 else end + 2
            out.append(" ")
            continue
        if char in "}]":
            last = len(out) - 1
            while last >= 0 and out[last].isspace():
                last -= 1
            if last >= 0 and out[last] == ",":
                del out[last]
        out.append(char)
        index += 1
    return "".join(out)


def read_tsconfig(path: Path) -> dict[str, Any]:
    """Read a tsconfig, following relative ``extends`` and merging compilerOptions."""

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(f"tsconfig not found: {path}") from exc
    text = strip_json_comments(text)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Unable to parse tsconfig {path}: {exc}") from exc

    extends = payload.pop("extends", None)
    if isinstance(extends, str) and extends.startswith("."):
        base_path = (path.parent / extends).resolve()
        if base_path.suffix != ".json":
            base_path = base_path.with_name(base_path.name + ".json")
        base = read_tsconfig(base_path)
        merged_options = {**base.get("compilerOptions", {}), **payload.get("compilerOptions", {})}
        payload = {**base, **payload, "compilerOptions": merged_options}
    elif extends:
        logger.debug("Skipping non-relative tsconfig extends '%s' in %s", extends, path)
    return payload


def infer_formats(tsconfig: Mapping[str, Any]) -> Tuple[Format, ...]:
    module = str((tsconfig.get("compilerOptions") or {}).get("module", "")).lower()
    if module in LEGACY_MODULE_KINDS:
        return (Format.CJS,)
    return (Format.ESM,)


def load_options_file(path: Path) -> RollupExecutorOptions:
    """Load raw options from a JSON or YAML document."""

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Options file not found: {path}") from exc
    try:
        if path.suffix in {".yaml", ".yml"}:
            payload = yaml.safe_load(text) or {}
        else:
            payload = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Unable to parse options file {path}: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise ConfigurationError(f"Options file {path} must contain a mapping")
    return parse_options(payload, source=str(path))


def load_target_options(
    project_json: Path,
    target: str = "build",
    configuration: Optional[str] = None,
) -> RollupExecutorOptions:
    """Read ``targets.<target>.options`` from a project.json, applying a configuration overlay."""

    try:
        payload = json.loads(project_json.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Project file not found: {project_json}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Unable to parse {project_json}: {exc}") from exc
    target_spec = (payload.get("targets") or {}).get(target)
    if target_spec is None:
        raise ConfigurationError(f"Target '{target}' not defined in {project_json}")
    options = dict(target_spec.get("options") or {})
    if configuration:
        overlay = (target_spec.get("configurations") or {}).get(configuration)
        if overlay is None:
            raise ConfigurationError(f"Configuration '{configuration}' not defined for target '{target}'")
        options.update(overlay)
    return parse_options(options, source=f"{project_json}#{target}")


def parse_options(payload: Mapping[str, Any], *, source: str = "options") -> RollupExecutorOptions:
    try:
        return RollupExecutorOptions.model_validate(dict(payload))
    except PydanticValidationError as exc:
        raise ConfigurationError(f"Invalid build options in {source}: {exc}") from exc


def normalize_options(
    raw: RollupExecutorOptions,
    workspace_root: Path,
    source_root: str | Path,
    *,
    overrides: Sequence[ConfigOverride] = (),
    environ: Optional[Mapping[str, str]] = None,
) -> BuildConfiguration:
    """Resolve paths, formats and the compiler strategy for one build."""

    root = Path(workspace_root).resolve()
    env = os.environ if environ is None else environ

    main = _require_path(root / raw.main, "Entry file")
    package_json = _require_path(root / raw.project, "Package manifest")
    ts_config = _require_path(root / raw.ts_config, "tsconfig")
    resolved_source_root = (root / source_root).resolve()

    if raw.format:
        formats = tuple(Format(value) for value in dict.fromkeys(raw.format))
    else:
        formats = infer_formats(read_tsconfig(ts_config))

    chain = tuple(_load_override(spec, root) for spec in raw.rollup_config) + tuple(overrides)

    return BuildConfiguration(
        workspace_root=root,
        project_root=package_json.parent,
        source_root=resolved_source_root,
        package_json=package_json,
        main=main,
        output_path=(root / raw.output_path).resolve(),
        ts_config=ts_config,
        formats=formats,
        compiler=COMPILERS[raw.compiler](),
        output_file_name=raw.output_file_name,
        external=tuple(raw.external),
        overrides=chain,
        assets=tuple(_normalize_assets(raw.assets, root, resolved_source_root)),
        css=CssOptions(extract=raw.extract_css, javascript_enabled=raw.javascript_enabled),
        watch=raw.watch,
        delete_output_path=raw.delete_output_path,
        generate_exports_field=raw.generate_exports_field,
        update_buildable_project_deps_in_package_json=raw.update_buildable_project_deps_in_package_json,
        buildable_project_deps_in_package_json_type=raw.buildable_project_deps_in_package_json_type,
        node_env=raw.node_env or env.get("NODE_ENV") or "production",
    )


def _require_path(path: Path, label: str) -> Path:
    resolved = path.resolve()
    if not resolved.exists():
        raise ConfigurationError(f"{label} not found: {resolved}")
    return resolved


def _normalize_assets(
    assets: Iterable[AssetGlobPattern | str],
    root: Path,
    source_root: Path,
) -> Iterable[AssetCopyRule]:
    for asset in assets:
        if isinstance(asset, AssetGlobPattern):
            yield AssetCopyRule(
                glob=asset.glob,
                input=(root / asset.input).resolve(),
                output=asset.output,
            )
            continue
        asset_path = (root / asset).resolve()
        if not asset_path.is_relative_to(source_root):
            raise ConfigurationError(f"Asset '{asset}' must be inside the project source root {source_root}")
        is_directory = asset_path.is_dir()
        input_dir = asset_path if is_directory else asset_path.parent
        yield AssetCopyRule(
            glob="**/*" if is_directory else asset_path.name,
            input=input_dir,
            output=input_dir.relative_to(source_root).as_posix() or ".",
        )


def _load_override(spec: str, root: Path) -> ConfigOverride:
    """Resolve ``module:function`` or ``path/to/file.py:function``; function defaults to ``override``."""

    target, _, attribute = spec.partition(":")
    attribute = attribute or "override"
    if target.endswith(".py"):
        file_path = (root / target).resolve()
        if not file_path.exists():
            raise ConfigurationError(f"Rollup config override not found: {file_path}")
        module_spec = importlib.util.spec_from_file_location(f"_aware_rollup_override_{file_path.stem}", file_path)
        if module_spec is None or module_spec.loader is None:
            raise ConfigurationError(f"Unable to load rollup config override {file_path}")
        module = importlib.util.module_from_spec(module_spec)
        module_spec.loader.exec_module(module)
    else:
        try:
            module = importlib.import_module(target)
        except ImportError as exc:
            raise ConfigurationError(f"Unable to import rollup config override '{target}': {exc}") from exc
    override = getattr(module, attribute, None)
    if not callable(override):
        raise ConfigurationError(f"Rollup config override '{spec}' does not name a callable")
    return override
