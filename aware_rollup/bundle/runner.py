"""Batch and watch execution of composed rollup pipelines."""

from __future__ import annotations

import logging
import queue
import shutil
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence

from ..errors import BundleError, ConfigurationError
from .config import BuildConfiguration
from .engine import BundlerEngine, WatchEvent, WatchHandle
from .pipeline import RollupOptions

logger = logging.getLogger(__name__)

OnSuccess = Callable[[], object]

_CLOSED = object()


@dataclass(slots=True)
class FormatOutput:
    format: str
    success: bool
    error: Optional[str] = None
    files: List[str] = field(default_factory=list)


@dataclass(slots=True)
class BuildResult:
    success: bool
    outputs: List[FormatOutput] = field(default_factory=list)

    def to_dict(self) -> dict[str, bool]:
        return {"success": self.success}


def delete_output_dir(workspace_root: Path, output_path: Path) -> None:
    if output_path.resolve() == workspace_root.resolve():
        raise ConfigurationError("Refusing to delete the workspace root as the output path")
    if output_path.exists():
        logger.debug("Removing %s", output_path)
        shutil.rmtree(output_path)


def run_batch(
    configs: Sequence[RollupOptions],
    *,
    engine: BundlerEngine,
    config: BuildConfiguration,
    project_name: str,
    on_success: OnSuccess,
) -> BuildResult:
    """Bundle each format in order; one failing format does not stop the rest."""

    started = time.perf_counter()
    logger.info("Bundling %s...", project_name)
    if config.delete_output_path:
        delete_output_dir(config.workspace_root, config.output_path)

    outputs: List[FormatOutput] = []
    for options in configs:
        fmt = options.output.format.value
        try:
            bundle = engine.bundle(options)
        except BundleError as exc:
            logger.error("Error during bundle: %s", exc)
            outputs.append(FormatOutput(format=fmt, success=False, error=str(exc)))
            continue
        outputs.append(FormatOutput(format=fmt, success=True, files=list(bundle.files)))

    success = all(output.success for output in outputs)
    if success:
        on_success()
        logger.info("⚡ Done in %.2fs", time.perf_counter() - started)
    else:
        logger.error("Bundle failed: %s", project_name)
    return BuildResult(success=success, outputs=outputs)


class WatchSession:
    """Iterator of BuildResult values, one per finished or failed rebuild cycle.

    Engine events are produced on the engine's reader thread and consumed here,
    so ``on_cycle_end`` only ever runs on the iterating thread. The engine
    handle is released by :meth:`close`, by leaving a ``with`` block, when a
    ``for`` loop over the session ends (including ``break``), or when iteration
    raises.
    """

    def __init__(
        self,
        engine: BundlerEngine,
        configs: Sequence[RollupOptions],
        *,
        on_cycle_end: OnSuccess,
        project_name: str,
    ) -> None:
        self.project_name = project_name
        self._on_cycle_end = on_cycle_end
        self._events: "queue.Queue[object]" = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._handle: WatchHandle = engine.watch(list(configs), self._events.put)

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "WatchSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __iter__(self) -> Iterator[BuildResult]:
        # leaving a for loop early closes the generator, which releases the handle
        try:
            while True:
                result = self.next_result()
                if result is None:
                    return
                yield result
        finally:
            self.close()

    def __next__(self) -> BuildResult:
        result = self.next_result()
        if result is None:
            raise StopIteration
        return result

    def next_result(self, timeout: Optional[float] = None) -> Optional[BuildResult]:
        """Block for the next cycle result.

        Returns ``None`` once the session is closed or when ``timeout`` elapses.
        """

        deadline = None if timeout is None else time.monotonic() + timeout
        try:
            while not self._closed:
                remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
                try:
                    event = self._events.get(timeout=remaining)
                except queue.Empty:
                    return None
                if event is _CLOSED:
                    return None
                result = self._handle_event(event)
                if result is not None:
                    return result
        except BaseException:
            self.close()
            raise
        return None

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._handle.close()
        finally:
            self._events.put(_CLOSED)

    def _handle_event(self, event: object) -> Optional[BuildResult]:
        if not isinstance(event, WatchEvent):
            return None
        if event.code == "START":
            logger.info("Bundling %s...", self.project_name)
            return None
        if event.code == "END":
            self._on_cycle_end()
            logger.info("Bundle complete. Watching for file changes...")
            return BuildResult(success=True)
        if event.code == "ERROR":
            logger.error("Error during bundle: %s", event.error)
            return BuildResult(success=False)
        logger.debug("Ignoring watch event %s", event.code)
        return None
