"""Shared helpers used by bundle tooling."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any


_CLASS_NAME_SPLIT_RE = re.compile(r"[^a-zA-Z0-9]+")


def read_json(path: Path) -> dict[str, Any]:
    """Load a JSON object preserving key order."""

    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object in {path}")
    return payload


def write_json(payload: Any, path: Path) -> None:
    """Write JSON payload to disk with canonical formatting."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def write_text(path: Path, content: str) -> None:
    """Write text to file ensuring parent directories exist."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def class_name(value: str) -> str:
    """Return the PascalCase form of a project name (``my-lib`` -> ``MyLib``)."""

    parts = [part for part in _CLASS_NAME_SPLIT_RE.split(value) if part]
    return "".join(part[:1].upper() + part[1:] for part in parts)


def sorted_mapping(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {key: payload[key] for key in sorted(payload)}
