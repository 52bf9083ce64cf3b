from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from aware_rollup.bundle.engine import BundleOutput, BundlerEngine, WatchEvent, WatchHandle, WatchListener
from aware_rollup.bundle.pipeline import RollupOptions
from aware_rollup.errors import BundleError
from aware_rollup.workspace import ExecutorContext, WorkspaceGraph


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def _touch(path: Path, content: str = "export {};\n") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


GRAPH = {
    "projects": {
        "ui": {
            "name": "ui",
            "root": "libs/ui",
            "sourceRoot": "libs/ui/src",
            "packageName": "@acme/ui",
            "targets": ["build", "test"],
        },
        "core": {
            "name": "core",
            "root": "libs/core",
            "sourceRoot": "libs/core/src",
            "packageName": "@acme/core",
            "outputPath": "dist/libs/core",
            "targets": ["build"],
        },
        "utils": {
            "name": "utils",
            "root": "libs/utils",
            "packageName": "@acme/utils",
            "targets": ["lint"],
        },
    },
    "dependencies": {
        "ui": [
            {"source": "ui", "target": "core", "type": "static"},
            {"source": "ui", "target": "npm:lodash", "type": "static"},
        ],
        "core": [
            {"source": "core", "target": "utils", "type": "static"},
        ],
        "utils": [
            {"source": "utils", "target": "npm:tslib", "type": "static"},
        ],
    },
    "externalNodes": {
        "npm:lodash": {"packageName": "lodash", "version": "4.17.21"},
        "npm:tslib": {"packageName": "tslib", "version": "2.6.2"},
    },
}

BUILD_OPTIONS = {
    "project": "libs/ui/package.json",
    "main": "libs/ui/src/index.ts",
    "outputPath": "dist/libs/ui",
    "tsConfig": "libs/ui/tsconfig.lib.json",
    "compiler": "babel",
}


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    """A workspace holding the ``ui`` library, which depends on ``core`` and lodash."""

    _write_json(tmp_path / "graph.json", GRAPH)
    _write_json(
        tmp_path / "libs/ui/package.json",
        {"name": "@acme/ui", "version": "1.0.0", "dependencies": {"react": "^18.2.0"}},
    )
    _write_json(tmp_path / "libs/ui/tsconfig.json", {"compilerOptions": {"module": "esnext", "strict": True}})
    (tmp_path / "libs/ui/tsconfig.lib.json").write_text(
        '{\n  // library build\n  "extends": "./tsconfig.json",\n  "compilerOptions": {"declaration": true,},\n}\n',
        encoding="utf-8",
    )
    _write_json(tmp_path / "libs/ui/project.json", {"name": "ui", "targets": {"build": {"options": BUILD_OPTIONS}}})
    _touch(tmp_path / "libs/ui/src/index.ts")
    _touch(tmp_path / "libs/ui/src/widgets/button.ts")
    _touch(tmp_path / "libs/ui/src/widgets/panel.tsx")
    _touch(tmp_path / "libs/ui/src/types.d.ts", "declare const x: number;\n")
    _touch(tmp_path / "libs/ui/src/assets/logo.svg", "<svg/>\n")
    _write_json(tmp_path / "dist/libs/core/package.json", {"name": "@acme/core", "version": "2.3.0"})
    return tmp_path


@pytest.fixture()
def graph(workspace: Path) -> WorkspaceGraph:
    return WorkspaceGraph.load(workspace / "graph.json")


@pytest.fixture()
def context(workspace: Path, graph: WorkspaceGraph) -> ExecutorContext:
    return ExecutorContext(root=workspace, project_name="ui", graph=graph)


@pytest.fixture()
def build_options() -> Callable[..., Dict[str, Any]]:
    def factory(**overrides: Any) -> Dict[str, Any]:
        return {**BUILD_OPTIONS, **overrides}

    return factory


class FakeHandle(WatchHandle):
    def __init__(self, listener: WatchListener) -> None:
        self.listener = listener
        self.close_calls = 0

    def emit(self, code: str, error: Optional[str] = None) -> None:
        self.listener(WatchEvent(code, error))

    def close(self) -> None:
        self.close_calls += 1


@dataclass
class FakeEngine(BundlerEngine):
    """Records bundle calls; formats in ``failing`` raise BundleError."""

    failing: Sequence[str] = ()
    bundled: List[str] = field(default_factory=list)
    handles: List[FakeHandle] = field(default_factory=list)

    def bundle(self, options: RollupOptions) -> BundleOutput:
        fmt = options.output.format.value
        self.bundled.append(fmt)
        if fmt in self.failing:
            raise BundleError(f"{fmt} build broke", format=fmt)
        return BundleOutput(format=fmt, files=[f"index.{options.output.format.extension}"])

    def watch(self, configs: Sequence[RollupOptions], listener: WatchListener) -> WatchHandle:
        handle = FakeHandle(listener)
        self.handles.append(handle)
        return handle


@pytest.fixture()
def engine() -> FakeEngine:
    return FakeEngine()
