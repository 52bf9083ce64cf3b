"""Pydantic models describing raw build options."""

from __future__ import annotations

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AssetGlobPattern(BaseModel):
    glob: str
    input: str
    output: str

    model_config = ConfigDict(extra="ignore")


class RollupExecutorOptions(BaseModel):
    """Options as written in a project's build target.

    Paths are relative to the workspace root. Field aliases follow the
    camelCase names used in ``project.json``.
    """

    project: str = Field(..., description="Path to the library's package.json.")
    main: str = Field(..., description="Entry file of the library.")
    output_path: str = Field(..., alias="outputPath")
    ts_config: str = Field(..., alias="tsConfig")
    output_file_name: Optional[str] = Field(default=None, alias="outputFileName")
    format: List[Literal["esm", "cjs", "umd"]] = Field(default_factory=list)
    compiler: Literal["babel", "tsc", "swc"] = "babel"
    external: List[str] = Field(default_factory=list)
    rollup_config: List[str] = Field(default_factory=list, alias="rollupConfig")
    assets: List[Union[AssetGlobPattern, str]] = Field(default_factory=list)
    watch: bool = False
    delete_output_path: bool = Field(default=True, alias="deleteOutputPath")
    extract_css: Union[bool, str] = Field(default=False, alias="extractCss")
    javascript_enabled: bool = Field(default=False, alias="javascriptEnabled")
    generate_exports_field: bool = Field(default=False, alias="generateExportsField")
    update_buildable_project_deps_in_package_json: bool = Field(
        default=True, alias="updateBuildableProjectDepsInPackageJson"
    )
    buildable_project_deps_in_package_json_type: Literal["dependencies", "peerDependencies"] = Field(
        default="peerDependencies", alias="buildableProjectDepsInPackageJsonType"
    )
    node_env: Optional[str] = Field(default=None, alias="nodeEnv")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @field_validator("rollup_config", "external", mode="before")
    @classmethod
    def _coerce_list(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value
