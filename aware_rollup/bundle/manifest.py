"""Distribution manifest (package.json) synthesis."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence, Tuple

from ..errors import ConfigurationError
from ..workspace import DependentProject
from .config import BuildConfiguration, Format
from .utils import read_json, sorted_mapping, write_json

logger = logging.getLogger(__name__)

INDEX_KEY = "index"
MANIFEST_NAME = "package.json"
DEFAULT_INDEX_ENTRY = {
    "types": "./src/index.d.ts",
    "import": "./src/index.js",
    "require": "./src/index.cjs",
}


def load_package_json(path: Path) -> Dict[str, Any]:
    try:
        return read_json(path)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Package manifest not found: {path}") from exc
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigurationError(f"Unable to parse package manifest {path}: {exc}") from exc


def build_export_map(
    entry_keys: Iterable[str],
    formats: Sequence[Format],
) -> Tuple[Dict[str, Dict[str, str]], Dict[str, str]]:
    """Return the conditional export map and the index descriptor.

    ``src/widgets/button`` is exported as ``./widgets/button``; the index entry
    is exported as ``.``.
    """

    has_esm = Format.ESM in formats
    has_cjs = Format.CJS in formats
    exports: Dict[str, Dict[str, str]] = {}
    index_entry = dict(DEFAULT_INDEX_ENTRY)
    for key in sorted(entry_keys):
        _, _, relative = key.partition("/")
        relative = relative or key
        entry = {"types": f"./{key}.d.ts"}
        if has_esm:
            entry["import"] = f"./{key}.js"
        if has_cjs:
            entry["require"] = f"./{key}.cjs"
        if relative == INDEX_KEY:
            index_entry = entry
            continue
        exports[f"./{relative}"] = entry
    exports["."] = index_entry
    return exports, index_entry


def update_package_json(
    config: BuildConfiguration,
    inputs: Mapping[str, Path] | Iterable[str],
    package_json: MutableMapping[str, Any],
    *,
    dependencies: Sequence[DependentProject] = (),
) -> MutableMapping[str, Any]:
    """Apply resolution fields and exports to ``package_json`` and write it to the output path."""

    has_esm = config.has_format(Format.ESM)
    has_cjs = config.has_format(Format.CJS)
    exports, index_entry = build_export_map(inputs, config.formats)

    package_json["type"] = "module" if has_esm else "commonjs"
    package_json["types"] = index_entry["types"]
    if has_esm:
        package_json["module"] = index_entry["import"]
    if has_cjs:
        package_json["main"] = index_entry["require"]

    existing = package_json.get("exports")
    # a string exports field is hand-authored and left alone
    if config.generate_exports_field and not isinstance(existing, str):
        package_json["exports"] = {**(existing or {}), **exports}
    if isinstance(package_json.get("exports"), Mapping):
        package_json["exports"] = sorted_mapping(package_json["exports"])

    libraries = [dep for dep in dependencies if dep.kind == "lib"]
    if libraries and config.update_buildable_project_deps_in_package_json:
        update_dependency_references(
            package_json,
            libraries,
            workspace_root=config.workspace_root,
            section=config.buildable_project_deps_in_package_json_type,
        )

    target = config.output_path / MANIFEST_NAME
    write_json(package_json, target)
    logger.debug("Wrote %s", target)
    return package_json


def update_dependency_references(
    package_json: MutableMapping[str, Any],
    libraries: Iterable[DependentProject],
    *,
    workspace_root: Path,
    section: str = "peerDependencies",
) -> list[str]:
    """Record the current version of each workspace library the unit depends on.

    Libraries already declared in ``dependencies``, ``devDependencies`` or
    ``peerDependencies`` keep their declared range. Returns the names added.
    """

    added: list[str] = []
    for dep in libraries:
        if _is_declared(package_json, dep.name):
            continue
        version = _library_version(dep, workspace_root)
        if version is None:
            logger.warning("No version found for workspace dependency %s", dep.name)
            continue
        package_json.setdefault(section, {})[dep.name] = version
        added.append(dep.name)
    return added


def _is_declared(package_json: Mapping[str, Any], name: str) -> bool:
    return any(
        name in (package_json.get(section) or {})
        for section in ("dependencies", "devDependencies", "peerDependencies")
    )


def _library_version(dep: DependentProject, workspace_root: Path) -> Optional[str]:
    if dep.version:
        return dep.version
    if dep.project is None:
        return None
    candidates = []
    if dep.project.output_path:
        candidates.append(workspace_root / dep.project.output_path / MANIFEST_NAME)
    candidates.append(workspace_root / dep.project.root / MANIFEST_NAME)
    for candidate in candidates:
        if candidate.exists():
            version = read_json(candidate).get("version")
            if version:
                return str(version)
    return None
