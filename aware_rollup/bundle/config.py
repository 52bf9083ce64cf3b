"""Resolved build configuration shared by composer, runner and manifest."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, ClassVar, Literal, Optional, Tuple, Union

if TYPE_CHECKING:
    from .pipeline import RollupOptions


class Format(str, Enum):
    ESM = "esm"
    CJS = "cjs"
    UMD = "umd"

    @property
    def extension(self) -> str:
        return "js" if self is Format.ESM else "cjs"


@dataclass(frozen=True, slots=True)
class TscCompiler:
    """Type-checked compile through rollup-plugin-typescript2."""

    kind: ClassVar[str] = "tsc"
    requires_type_check_stage: ClassVar[bool] = True
    requires_type_validation: ClassVar[bool] = False


@dataclass(frozen=True, slots=True)
class BabelCompiler:
    """Type-checked compile followed by a Babel transpile stage."""

    kind: ClassVar[str] = "babel"
    requires_type_check_stage: ClassVar[bool] = True
    requires_type_validation: ClassVar[bool] = False

    babel_helpers: str = "bundled"
    root_mode: str = "upward"


@dataclass(frozen=True, slots=True)
class SwcCompiler:
    """Fast native compile; types are validated with tsc before bundling."""

    kind: ClassVar[str] = "swc"
    requires_type_check_stage: ClassVar[bool] = False
    requires_type_validation: ClassVar[bool] = True


CompilerStrategy = Union[TscCompiler, BabelCompiler, SwcCompiler]

COMPILERS: dict[str, Callable[[], CompilerStrategy]] = {
    "tsc": TscCompiler,
    "babel": BabelCompiler,
    "swc": SwcCompiler,
}

ConfigOverride = Callable[["RollupOptions"], "RollupOptions"]


@dataclass(frozen=True, slots=True)
class AssetCopyRule:
    glob: str
    input: Path
    output: str


@dataclass(frozen=True, slots=True)
class CssOptions:
    extract: Union[bool, str] = False
    javascript_enabled: bool = False


@dataclass(frozen=True)
class BuildConfiguration:
    """Fully resolved description of one build request. Never mutated."""

    workspace_root: Path
    project_root: Path
    source_root: Path
    package_json: Path
    main: Path
    output_path: Path
    ts_config: Path
    formats: Tuple[Format, ...]
    compiler: CompilerStrategy
    output_file_name: Optional[str] = None
    external: Tuple[str, ...] = ()
    overrides: Tuple[ConfigOverride, ...] = ()
    assets: Tuple[AssetCopyRule, ...] = ()
    css: CssOptions = field(default_factory=CssOptions)
    watch: bool = False
    delete_output_path: bool = True
    generate_exports_field: bool = False
    update_buildable_project_deps_in_package_json: bool = True
    buildable_project_deps_in_package_json_type: Literal["dependencies", "peerDependencies"] = "peerDependencies"
    node_env: str = "production"

    def has_format(self, fmt: Format) -> bool:
        return fmt in self.formats

    @property
    def production(self) -> bool:
        return self.node_env == "production"
