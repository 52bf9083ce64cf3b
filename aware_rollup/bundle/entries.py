"""Entry point discovery beneath the library entry directory."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable

SOURCE_SUFFIXES = (".ts", ".tsx")
DECLARATION_SUFFIX = ".d.ts"


def scan_entry_points(main: Path, suffixes: Iterable[str] = SOURCE_SUFFIXES) -> Dict[str, Path]:
    """Map export keys to source files below the directory holding ``main``.

    Keys are relative to that directory's parent with the extension stripped,
    so ``libs/ui/src/widgets/button.ts`` becomes ``src/widgets/button``.
    """

    entry_dir = main.parent
    base = entry_dir.parent
    allowed = tuple(suffixes)
    index: Dict[str, Path] = {}
    for path in sorted(entry_dir.rglob("*"), key=lambda item: item.as_posix()):
        if not path.is_file() or path.name.endswith(DECLARATION_SUFFIX):
            continue
        if path.suffix not in allowed:
            continue
        key = path.relative_to(base).with_suffix("").as_posix()
        index[key] = path
    return index
