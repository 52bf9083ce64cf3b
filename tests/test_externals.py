from __future__ import annotations

from aware_rollup.bundle.externals import ExternalPredicate, resolve_externals
from aware_rollup.workspace import DependentProject


def test_predicate_matches_exact_and_deep_imports() -> None:
    predicate = ExternalPredicate(frozenset({"foo", "@scope/pkg"}))

    assert predicate("foo")
    assert predicate("foo/bar")
    assert predicate("foo/bar/baz.js")
    assert predicate("@scope/pkg/sub")
    assert not predicate("foobar")
    assert not predicate("@scope/pkgx")
    assert not predicate("./foo")


def test_resolve_externals_unions_all_sources() -> None:
    dependencies = [
        DependentProject(name="@acme/core", kind="lib"),
        DependentProject(name="lodash", kind="npm", version="4.17.21"),
    ]
    package_json = {"dependencies": {"react": "^18.2.0"}, "devDependencies": {"vitest": "1.0.0"}}

    predicate = resolve_externals(dependencies, package_json, explicit=["rxjs"])

    assert predicate.sorted_names() == ["@acme/core", "lodash", "react", "rxjs"]
    assert not predicate("vitest")


def test_union_accepts_predicates_and_plain_names() -> None:
    base = ExternalPredicate(frozenset({"a"}))

    merged = base.union(ExternalPredicate(frozenset({"b"})), ["c"])

    assert merged.sorted_names() == ["a", "b", "c"]
    assert base.sorted_names() == ["a"]


def test_empty_manifest_dependencies_are_ignored() -> None:
    predicate = resolve_externals([], {"dependencies": None})

    assert predicate.names == frozenset()
    assert not predicate("anything")
