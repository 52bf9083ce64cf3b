from __future__ import annotations

import json
from pathlib import Path

import pytest

from aware_rollup.bundle.config import BabelCompiler, Format, SwcCompiler
from aware_rollup.bundle.normalize import (
    infer_formats,
    load_options_file,
    load_target_options,
    normalize_options,
    parse_options,
    read_tsconfig,
    strip_json_comments,
)
from aware_rollup.errors import ConfigurationError


def _normalize(workspace: Path, options: dict, **kwargs):
    return normalize_options(parse_options(options), workspace, "libs/ui/src", **kwargs)


def test_resolves_paths_and_infers_esm(workspace: Path, build_options) -> None:
    config = _normalize(workspace, build_options(), environ={})

    root = workspace.resolve()
    assert config.main == root / "libs/ui/src/index.ts"
    assert config.project_root == root / "libs/ui"
    assert config.output_path == root / "dist/libs/ui"
    assert config.formats == (Format.ESM,)
    assert isinstance(config.compiler, BabelCompiler)
    assert config.node_env == "production"
    assert config.production


def test_infers_cjs_for_commonjs_module() -> None:
    assert infer_formats({"compilerOptions": {"module": "CommonJS"}}) == (Format.CJS,)
    assert infer_formats({"compilerOptions": {"module": "umd"}}) == (Format.CJS,)
    assert infer_formats({"compilerOptions": {"module": "ES2020"}}) == (Format.ESM,)
    assert infer_formats({}) == (Format.ESM,)


def test_explicit_formats_keep_order_without_duplicates(workspace: Path, build_options) -> None:
    config = _normalize(workspace, build_options(format=["cjs", "esm", "cjs"], compiler="swc"), environ={})

    assert config.formats == (Format.CJS, Format.ESM)
    assert isinstance(config.compiler, SwcCompiler)


def test_node_env_from_environment(workspace: Path, build_options) -> None:
    config = _normalize(workspace, build_options(), environ={"NODE_ENV": "development"})

    assert config.node_env == "development"
    assert not config.production


def test_missing_entry_file(workspace: Path, build_options) -> None:
    with pytest.raises(ConfigurationError, match="Entry file not found"):
        _normalize(workspace, build_options(main="libs/ui/src/missing.ts"))


def test_unknown_option_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Invalid build options"):
        parse_options({"project": "p", "main": "m", "outputPath": "o", "tsConfig": "t", "bogus": 1})


def test_read_tsconfig_follows_extends_and_tolerates_comments(workspace: Path) -> None:
    tsconfig = read_tsconfig(workspace / "libs/ui/tsconfig.lib.json")

    assert tsconfig["compilerOptions"] == {"module": "esnext", "strict": True, "declaration": True}


def test_assets_are_normalized(workspace: Path, build_options) -> None:
    options = build_options(
        assets=[
            "libs/ui/src/assets",
            "libs/ui/src/assets/logo.svg",
            {"glob": "*.md", "input": "libs/ui", "output": "."},
        ]
    )

    config = _normalize(workspace, options)

    root = workspace.resolve()
    directory, single, pattern = config.assets
    assert (directory.glob, directory.input, directory.output) == ("**/*", root / "libs/ui/src/assets", "assets")
    assert (single.glob, single.input, single.output) == ("logo.svg", root / "libs/ui/src/assets", "assets")
    assert (pattern.glob, pattern.input, pattern.output) == ("*.md", root / "libs/ui", ".")


def test_asset_outside_source_root_is_rejected(workspace: Path, build_options) -> None:
    with pytest.raises(ConfigurationError, match="must be inside the project source root"):
        _normalize(workspace, build_options(assets=["libs/ui/package.json"]))


def test_overrides_from_python_file(workspace: Path, build_options) -> None:
    (workspace / "tools").mkdir()
    (workspace / "tools/rollup_override.py").write_text(
        "def override(options):\n    return options\n\n\ndef rename(options):\n    return options\n",
        encoding="utf-8",
    )

    def extra(options):
        return options

    config = _normalize(
        workspace,
        build_options(rollupConfig=["tools/rollup_override.py", "tools/rollup_override.py:rename"]),
        overrides=[extra],
    )

    assert [fn.__name__ for fn in config.overrides] == ["override", "rename", "extra"]


def test_override_must_be_callable(workspace: Path, build_options) -> None:
    (workspace / "tools").mkdir()
    (workspace / "tools/bad_override.py").write_text("override = 3\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="does not name a callable"):
        _normalize(workspace, build_options(rollupConfig="tools/bad_override.py"))


def test_load_options_file_yaml(tmp_path: Path) -> None:
    path = tmp_path / "build.yaml"
    path.write_text(
        "project: libs/ui/package.json\nmain: libs/ui/src/index.ts\noutputPath: dist/libs/ui\n"
        "tsConfig: libs/ui/tsconfig.lib.json\nformat: [esm, cjs]\ngenerateExportsField: true\n",
        encoding="utf-8",
    )

    options = load_options_file(path)

    assert options.format == ["esm", "cjs"]
    assert options.generate_exports_field is True
    assert options.compiler == "babel"


def test_load_target_options_applies_configuration(tmp_path: Path) -> None:
    project_json = tmp_path / "project.json"
    project_json.write_text(
        json.dumps(
            {
                "targets": {
                    "build": {
                        "options": {
                            "project": "p/package.json",
                            "main": "p/src/index.ts",
                            "outputPath": "dist/p",
                            "tsConfig": "p/tsconfig.json",
                        },
                        "configurations": {"dev": {"nodeEnv": "development", "deleteOutputPath": False}},
                    }
                }
            }
        ),
        encoding="utf-8",
    )

    options = load_target_options(project_json, "build", "dev")

    assert options.node_env == "development"
    assert options.delete_output_path is False
    with pytest.raises(ConfigurationError, match="Configuration 'prod' not defined"):
        load_target_options(project_json, "build", "prod")
    with pytest.raises(ConfigurationError, match="Target 'test' not defined"):
        load_target_options(project_json, "test")


def test_read_tsconfig_with_trailing_and_inline_comments(tmp_path: Path) -> None:
    path = tmp_path / "tsconfig.json"
    path.write_text(
        "{\n"
        '  "compilerOptions": {\n'
        '    "module": "commonjs", // legacy output\n'
        '    /* es2020 */ "strict": true, /* inline */ "outDir": "../../dist/out-tsc",\n'
        '    "paths": {"@acme/*": ["libs/*"]}, // path aliases\n'
        "  },\n"
        "}\n",
        encoding="utf-8",
    )

    tsconfig = read_tsconfig(path)

    assert tsconfig["compilerOptions"] == {
        "module": "commonjs",
        "strict": True,
        "outDir": "../../dist/out-tsc",
        "paths": {"@acme/*": ["libs/*"]},
    }
    assert infer_formats(tsconfig) == (Format.CJS,)


def test_comment_markers_inside_strings_are_kept() -> None:
    text = '{"a": "http://example.com/*x*/", "b": "say \\"//hi\\"",}'

    assert json.loads(strip_json_comments(text)) == {"a": "http://example.com/*x*/", "b": 'say "//hi"'}
