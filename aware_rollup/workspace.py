"""Workspace dependency graph models and queries."""

from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError

NPM_PREFIX = "npm:"


class ProjectNode(BaseModel):
    name: str
    root: str
    source_root: Optional[str] = Field(default=None, alias="sourceRoot")
    package_name: Optional[str] = Field(default=None, alias="packageName")
    output_path: Optional[str] = Field(default=None, alias="outputPath")
    targets: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def import_name(self) -> str:
        """Name other projects use to import this one."""

        return self.package_name or self.name


class ExternalNode(BaseModel):
    package_name: str = Field(..., alias="packageName")
    version: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DependencyEdge(BaseModel):
    source: str
    target: str
    type: str = "static"

    model_config = ConfigDict(extra="ignore")

    @property
    def is_npm(self) -> bool:
        return self.target.startswith(NPM_PREFIX)


class WorkspaceGraph(BaseModel):
    """Projects, external packages and the dependency edges between them."""

    projects: Dict[str, ProjectNode] = Field(default_factory=dict)
    dependencies: Dict[str, List[DependencyEdge]] = Field(default_factory=dict)
    external_nodes: Dict[str, ExternalNode] = Field(default_factory=dict, alias="externalNodes")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def load(cls, path: Path) -> "WorkspaceGraph":
        """Load either the native layout or an ``nx graph --file`` export."""

        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Workspace graph not found: {path}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Unable to parse workspace graph {path}: {exc}") from exc
        try:
            if isinstance(payload, dict) and "graph" in payload:
                return cls.from_nx_graph(payload["graph"])
            return cls.model_validate(payload)
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid workspace graph {path}: {exc}") from exc

    @classmethod
    def from_nx_graph(cls, graph: Mapping[str, Any]) -> "WorkspaceGraph":
        projects: Dict[str, ProjectNode] = {}
        for name, node in (graph.get("nodes") or {}).items():
            data = node.get("data") or {}
            targets = data.get("targets") or {}
            build_options = (targets.get("build") or {}).get("options") or {}
            projects[name] = ProjectNode(
                name=name,
                root=data.get("root", ""),
                sourceRoot=data.get("sourceRoot"),
                packageName=data.get("packageName"),
                outputPath=build_options.get("outputPath"),
                targets=sorted(targets),
            )
        externals: Dict[str, ExternalNode] = {}
        for name, node in (graph.get("externalNodes") or {}).items():
            data = node.get("data") or {}
            externals[name] = ExternalNode(
                packageName=data.get("packageName", name[len(NPM_PREFIX):]),
                version=data.get("version"),
            )
        return cls(
            projects=projects,
            dependencies={
                name: [DependencyEdge.model_validate(edge) for edge in edges]
                for name, edges in (graph.get("dependencies") or {}).items()
            },
            externalNodes=externals,
        )

    def project(self, name: str) -> ProjectNode:
        try:
            return self.projects[name]
        except KeyError as exc:
            available = ", ".join(sorted(self.projects))
            raise ConfigurationError(f"Unknown project '{name}'. Available projects: {available}.") from exc

    def edges(self, name: str) -> List[DependencyEdge]:
        return list(self.dependencies.get(name, []))

    def npm_package_name(self, target: str) -> str:
        node = self.external_nodes.get(target)
        if node is not None:
            return node.package_name
        return target[len(NPM_PREFIX):]

    def direct_npm_dependencies(self, name: str) -> List[str]:
        """Registry package names the project depends on directly."""

        return [self.npm_package_name(edge.target) for edge in self.edges(name) if edge.is_npm]


@dataclass(slots=True)
class DependentProject:
    """A dependency of the unit being built, workspace library or npm package."""

    name: str
    kind: Literal["lib", "npm"]
    project: Optional[ProjectNode] = None
    version: Optional[str] = None


@dataclass(slots=True)
class ExecutorContext:
    """Identifiers and graph for one executor invocation."""

    root: Path
    project_name: str
    graph: WorkspaceGraph
    target_name: str = "build"
    configuration_name: Optional[str] = None
    is_verbose: bool = False

    @property
    def project(self) -> ProjectNode:
        return self.graph.project(self.project_name)


@dataclass(slots=True)
class ProjectDependencies:
    target: ProjectNode
    dependencies: List[DependentProject] = field(default_factory=list)

    @property
    def libraries(self) -> List[DependentProject]:
        return [dep for dep in self.dependencies if dep.kind == "lib"]


def calculate_project_dependencies(graph: WorkspaceGraph, project_name: str, target_name: str = "build") -> ProjectDependencies:
    """Collect buildable workspace libraries and npm packages reachable from a project.

    Libraries are followed transitively; a library is only recorded when it
    exposes ``target_name`` itself, since others are bundled from source.
    """

    target = graph.project(project_name)
    seen: set[str] = {project_name}
    collected: List[DependentProject] = []
    queue = deque(graph.edges(project_name))
    while queue:
        edge = queue.popleft()
        if edge.target in seen:
            continue
        seen.add(edge.target)
        if edge.is_npm:
            external = graph.external_nodes.get(edge.target)
            collected.append(
                DependentProject(
                    name=graph.npm_package_name(edge.target),
                    kind="npm",
                    version=external.version if external else None,
                )
            )
            continue
        node = graph.projects.get(edge.target)
        if node is None:
            continue
        if target_name in node.targets:
            collected.append(DependentProject(name=node.import_name, kind="lib", project=node))
        queue.extend(graph.edges(edge.target))
    return ProjectDependencies(target=target, dependencies=collected)
