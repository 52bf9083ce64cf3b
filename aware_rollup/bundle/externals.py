"""External module resolution shared by every output format."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, FrozenSet, Iterable, Mapping

from ..workspace import DependentProject


@dataclass(frozen=True, slots=True)
class ExternalPredicate:
    """Membership test for modules the bundle references by name.

    A request is external when it equals a member or is a deep import of one
    (``name/sub/path``).
    """

    names: FrozenSet[str] = frozenset()

    def __call__(self, request: str) -> bool:
        return self.is_external(request)

    def is_external(self, request: str) -> bool:
        if request in self.names:
            return True
        return any(request.startswith(f"{name}/") for name in self.names)

    def union(self, *others: "ExternalPredicate | Iterable[str]") -> "ExternalPredicate":
        merged = set(self.names)
        for other in others:
            merged.update(other.names if isinstance(other, ExternalPredicate) else other)
        return ExternalPredicate(frozenset(merged))

    def sorted_names(self) -> list[str]:
        return sorted(self.names)


def resolve_externals(
    dependencies: Iterable[DependentProject],
    package_json: Mapping[str, Any],
    explicit: Iterable[str] = (),
) -> ExternalPredicate:
    """Union of workspace library names, reachable npm packages, manifest dependencies and explicit externals."""

    names: set[str] = {dep.name for dep in dependencies}
    names.update(explicit)
    names.update((package_json.get("dependencies") or {}).keys())
    return ExternalPredicate(frozenset(name for name in names if name))
