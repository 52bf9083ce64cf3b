"""Bundler engine adapters.

The pipeline composer produces :class:`RollupOptions`; an engine turns them
into bundles. :class:`RollupNodeEngine` renders the options as a
``rollup.config.mjs`` module next to a small bridge script and drives Rollup's
JavaScript API through ``node``. The bridge reports progress as JSON lines on
stdout (``START``, ``END``, ``ERROR``, ``BUNDLE_END``).
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import subprocess
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..errors import BundleError
from .pipeline import JsImport, RollupOptions, Stage
from .utils import write_text

logger = logging.getLogger(__name__)

CONFIG_MODULE = "rollup.config.mjs"
BRIDGE_SCRIPT = "run-rollup.mjs"

_IDENT_RE = re.compile(r"[^a-zA-Z0-9_$]+")

BRIDGE_TEMPLATE = """\
import { rollup, watch } from "rollup";
import configs from "./rollup.config.mjs";

const emit = (event) => process.stdout.write(JSON.stringify(event) + "\\n");
const describe = (error) => String((error && error.message) || error);

if (process.argv[2] === "watch") {
  const watcher = watch(configs);
  watcher.on("event", (event) => {
    if (event.code === "START" || event.code === "END") {
      emit({ code: event.code });
    } else if (event.code === "ERROR") {
      emit({ code: "ERROR", error: describe(event.error) });
    }
    if (event.result) {
      event.result.close();
    }
  });
  const stop = () => watcher.close().then(() => process.exit(0));
  process.on("SIGTERM", stop);
  process.on("SIGINT", stop);
  process.stdin.on("end", stop);
  process.stdin.resume();
} else {
  try {
    const chunks = [];
    for (const config of configs) {
      const bundle = await rollup(config);
      const { output } = await bundle.write(config.output);
      await bundle.close();
      chunks.push(...output.map((chunk) => chunk.fileName));
    }
    emit({ code: "BUNDLE_END", chunks });
  } catch (error) {
    emit({ code: "ERROR", error: describe(error) });
    process.exit(1);
  }
}
"""


@dataclass(slots=True)
class BundleOutput:
    format: str
    files: List[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class WatchEvent:
    code: str
    error: Optional[str] = None
    chunks: Tuple[str, ...] = ()


WatchListener = Callable[[WatchEvent], None]


class WatchHandle(ABC):
    @abstractmethod
    def close(self) -> None:
        ...


class BundlerEngine(ABC):
    @abstractmethod
    def bundle(self, options: RollupOptions) -> BundleOutput:
        """Bundle one format; raise :class:`BundleError` on failure."""

    @abstractmethod
    def watch(self, configs: Sequence[RollupOptions], listener: WatchListener) -> WatchHandle:
        """Start watching all configs, reporting cycle events to ``listener``."""


class RollupNodeEngine(BundlerEngine):
    """Run rollup through node using the workspace's installed packages."""

    def __init__(
        self,
        workspace_root: Path,
        *,
        node: str = "node",
        node_env: str = "production",
        env: Optional[Dict[str, str]] = None,
    ) -> None:
        self.workspace_root = Path(workspace_root)
        self.node = node
        self.node_env = node_env
        self.env = env or {}

    def bundle(self, options: RollupOptions) -> BundleOutput:
        fmt = options.output.format.value
        workdir = self._stage_scripts([options])
        try:
            proc = subprocess.run(
                [self.node, str(workdir / BRIDGE_SCRIPT), "bundle"],
                cwd=str(self.workspace_root),
                capture_output=True,
                text=True,
                env=self._build_env(),
                check=False,
            )
        except FileNotFoundError as exc:
            raise BundleError(f"node executable not found: {self.node}", format=fmt) from exc
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

        events = [event for event in map(_parse_event, proc.stdout.splitlines()) if event is not None]
        errors = [event.error for event in events if event.code == "ERROR"]
        if proc.returncode != 0 or errors:
            message = errors[-1] if errors else (proc.stderr.strip() or f"rollup exited with code {proc.returncode}")
            raise BundleError(message, format=fmt, details=proc.stderr)
        files = [chunk for event in events if event.code == "BUNDLE_END" for chunk in event.chunks]
        return BundleOutput(format=fmt, files=files)

    def watch(self, configs: Sequence[RollupOptions], listener: WatchListener) -> WatchHandle:
        workdir = self._stage_scripts(configs)
        try:
            process = subprocess.Popen(
                [self.node, str(workdir / BRIDGE_SCRIPT), "watch"],
                cwd=str(self.workspace_root),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                env=self._build_env(),
            )
        except FileNotFoundError as exc:
            shutil.rmtree(workdir, ignore_errors=True)
            raise BundleError(f"node executable not found: {self.node}") from exc
        return NodeWatchHandle(process, listener, workdir)

    def _stage_scripts(self, configs: Sequence[RollupOptions]) -> Path:
        # scripts must live inside the workspace so node resolves its node_modules
        cache_root = self.workspace_root / "node_modules" / ".cache" / "aware-rollup"
        cache_root.mkdir(parents=True, exist_ok=True)
        workdir = Path(tempfile.mkdtemp(prefix="build-", dir=cache_root))
        write_text(workdir / CONFIG_MODULE, render_config_module(configs))
        write_text(workdir / BRIDGE_SCRIPT, BRIDGE_TEMPLATE)
        return workdir

    def _build_env(self) -> Dict[str, str]:
        return {**os.environ, **self.env, "NODE_ENV": self.node_env}


class NodeWatchHandle(WatchHandle):
    """Owns the watching node process and the thread reading its events."""

    def __init__(self, process: subprocess.Popen, listener: WatchListener, workdir: Path) -> None:
        self._process = process
        self._listener = listener
        self._workdir = workdir
        self._lock = threading.Lock()
        self._closed = False
        self._reader = threading.Thread(target=self._read_events, name="aware-rollup-watch", daemon=True)
        self._reader.start()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._process.stdin is not None:
            self._process.stdin.close()
        if self._process.poll() is None:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait()
        if self._reader is not threading.current_thread():
            self._reader.join(timeout=5)
        shutil.rmtree(self._workdir, ignore_errors=True)

    def _read_events(self) -> None:
        stream: Optional[IO[str]] = self._process.stdout
        if stream is None:
            return
        for line in stream:
            event = _parse_event(line)
            if event is None:
                if line.strip():
                    logger.debug("rollup: %s", line.rstrip())
                continue
            self._listener(event)
        returncode = self._process.wait()
        if not self._closed:
            self._listener(WatchEvent("ERROR", f"rollup watcher exited with code {returncode}"))


def render_config_module(configs: Sequence[RollupOptions]) -> str:
    """Render rollup configurations as an ES module exporting an array."""

    imports: Dict[tuple[str, str], str] = {}
    bodies = [_render_options(options, imports) for options in configs]

    lines = []
    for (module, export), ident in imports.items():
        if export == "default":
            lines.append(f"import {ident} from {json.dumps(module)};")
        else:
            lines.append(f"import {{ {export} as {ident} }} from {json.dumps(module)};")
    lines.append("")
    lines.append("const externalOf = (names) => (id) => names.some((name) => id === name || id.startsWith(`${name}/`));")
    lines.append("")
    lines.append("export default [")
    for body in bodies:
        lines.append(f"  {body},")
    lines.append("];")
    return "\n".join(lines) + "\n"


def _render_options(options: RollupOptions, imports: Dict[tuple[str, str], str]) -> str:
    if isinstance(options.input, dict):
        input_value: Any = {name: str(path) for name, path in options.input.items()}
    else:
        input_value = str(options.input)
    output = {
        "format": options.output.format.value,
        "dir": str(options.output.dir),
        "name": options.output.name,
        "entryFileNames": options.output.entry_file_names,
        "chunkFileNames": options.output.chunk_file_names,
    }
    plugins = ", ".join(_render_stage(stage, imports) for stage in options.plugins)
    return (
        f"{{ input: {_to_js(input_value, imports)}, output: {_to_js(output, imports)}, "
        f"external: externalOf({json.dumps(sorted(options.external.names))}), plugins: [{plugins}] }}"
    )


def _render_stage(stage: Stage, imports: Dict[tuple[str, str], str]) -> str:
    ident = _import_ident(stage.module, stage.export, imports)
    return f"{ident}({_to_js(dict(stage.options), imports)})"


def _import_ident(module: str, export: str, imports: Dict[tuple[str, str], str]) -> str:
    key = (module, export)
    if key not in imports:
        base = _IDENT_RE.sub("_", module.lstrip("@")).strip("_")
        imports[key] = f"{base}_{len(imports)}"
    return imports[key]


def _to_js(value: Any, imports: Dict[tuple[str, str], str]) -> str:
    if isinstance(value, JsImport):
        return _import_ident(value.module, value.export, imports)
    if isinstance(value, dict):
        items = ", ".join(f"{json.dumps(str(key))}: {_to_js(item, imports)}" for key, item in value.items())
        return f"{{{items}}}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_to_js(item, imports) for item in value) + "]"
    if isinstance(value, Path):
        return json.dumps(value.as_posix())
    return json.dumps(value)


def _parse_event(line: str) -> Optional[WatchEvent]:
    stripped = line.strip()
    if not stripped.startswith("{"):
        return None
    try:
        payload = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict) or "code" not in payload:
        return None
    return WatchEvent(
        code=str(payload["code"]),
        error=payload.get("error"),
        chunks=tuple(str(name) for name in payload.get("chunks") or ()),
    )
