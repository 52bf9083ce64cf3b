"""Type validation run before bundling with compilers that skip type checks."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

from ..errors import ValidationError

logger = logging.getLogger(__name__)


def validate_types(
    *,
    workspace_root: Path,
    project_root: Path,
    ts_config: Path,
    tsc: Optional[str] = None,
) -> None:
    """Run ``tsc --noEmit`` for the project; raise ValidationError on any diagnostic."""

    command = [_resolve_tsc(workspace_root, tsc), "--noEmit", "--pretty", "false", "-p", str(ts_config)]
    logger.debug("Validating types for %s: %s", project_root, " ".join(command))
    try:
        result = subprocess.run(
            command,
            cwd=str(workspace_root),
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        raise ValidationError(f"TypeScript compiler not found: {command[0]}") from exc

    if result.returncode != 0:
        diagnostics = _diagnostics(result.stdout) or _diagnostics(result.stderr)
        for line in diagnostics:
            logger.error(line)
        raise ValidationError(
            f"Type validation failed for {project_root} ({len(diagnostics)} diagnostic(s))"
        )


def _resolve_tsc(workspace_root: Path, override: Optional[str]) -> str:
    if override:
        return override
    local = workspace_root / "node_modules" / ".bin" / "tsc"
    if local.exists():
        return str(local)
    return shutil.which("tsc") or "tsc"


def _diagnostics(output: str) -> List[str]:
    return [line.rstrip() for line in output.splitlines() if line.strip()]
