"""Tests for cloudflare_kv_sync.config_loader: hierarchical config loading."""

import textwrap
from pathlib import Path

import pytest
import yaml

from cloudflare_kv_sync.config_loader import (
    _interpolate_recursive,
    _load_yaml_with_includes,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
)

# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("MY_TOKEN", "secret")
        assert interpolate_env_vars("${MY_TOKEN}") == "secret"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-~/notes}") == "~/notes"

    def test_empty_env_var_uses_default(self, monkeypatch):
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${EMPTY_VAR:-fallback}") == "fallback"

    def test_multiple_vars_in_one_string(self, monkeypatch):
        monkeypatch.setenv("A", "1")
        monkeypatch.setenv("B", "2")
        assert interpolate_env_vars("${A}-${B}") == "1-2"

    def test_literal_dollar_brace_no_closing(self):
        assert interpolate_env_vars("${UNCLOSED") == "${UNCLOSED"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("NS", "ns1")
        data = {"cloudflare": {"namespace_id": "${NS}", "timeout": 5}, "l": ["${NS}"]}
        assert _interpolate_recursive(data) == {
            "cloudflare": {"namespace_id": "ns1", "timeout": 5},
            "l": ["ns1"],
        }


# -------------------------------------------------------------------------
# !include
# -------------------------------------------------------------------------


class TestIncludes:
    """Tests for the !include YAML tag."""

    def test_include_relative_file(self, tmp_path):
        (tmp_path / "secrets.yml").write_text("api_token: abc\n")
        main = tmp_path / "config.yml"
        main.write_text("cloudflare: !include secrets.yml\n")
        assert _load_yaml_with_includes(main) == {
            "cloudflare": {"api_token": "abc"}
        }

    def test_include_nonexistent_raises(self, tmp_path):
        main = tmp_path / "config.yml"
        main.write_text("cloudflare: !include missing.yml\n")
        with pytest.raises(FileNotFoundError):
            _load_yaml_with_includes(main)

    def test_circular_include_raises(self, tmp_path):
        (tmp_path / "a.yml").write_text("b: !include b.yml\n")
        (tmp_path / "b.yml").write_text("a: !include a.yml\n")
        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml_with_includes(tmp_path / "a.yml")

    def test_nested_includes(self, tmp_path):
        sub = tmp_path / "sub"
        sub.mkdir()
        (sub / "leaf.yml").write_text("value: 1\n")
        (sub / "mid.yml").write_text("leaf: !include leaf.yml\n")
        (tmp_path / "top.yml").write_text("mid: !include sub/mid.yml\n")
        assert _load_yaml_with_includes(tmp_path / "top.yml") == {
            "mid": {"leaf": {"value": 1}}
        }

    def test_global_safe_loader_not_polluted(self):
        with pytest.raises(yaml.constructor.ConstructorError):
            yaml.safe_load("x: !include other.yml")


# -------------------------------------------------------------------------
# Discovery and merge
# -------------------------------------------------------------------------


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """CWD and HOME inside tmp_path, no KV_SYNC_CONFIG."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return tmp_path


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content))
    return path


class TestDiscoverConfigFiles:
    def test_empty_filesystem_returns_empty(self, isolated):
        assert discover_config_files() == []

    def test_env_var_takes_highest_precedence(self, isolated, monkeypatch):
        custom = _write(isolated / "custom.yml", "sync: {}\n")
        _write(isolated / ".kv_sync" / "config.yml", "sync: {}\n")
        monkeypatch.setenv("KV_SYNC_CONFIG", str(custom))
        assert discover_config_files()[0] == custom.resolve()

    def test_project_before_global(self, isolated):
        proj = _write(isolated / ".kv_sync" / "config.yml", "a: 1\n")
        glob = _write(
            isolated / "home" / ".config" / "kv_sync" / "config.yml", "a: 2\n"
        )
        result = discover_config_files()
        assert result.index(proj) < result.index(glob)

    def test_yaml_extension(self, isolated):
        proj = _write(isolated / ".kv_sync" / "config.yaml", "a: 1\n")
        assert proj in discover_config_files()


class TestLoadHierarchicalConfig:
    def test_zero_config_returns_empty_dict(self, isolated):
        assert load_hierarchical_config() == {}

    def test_project_overrides_global_at_section_level(self, isolated):
        _write(
            isolated / "home" / ".config" / "kv_sync" / "config.yml",
            """\
            cloudflare:
              account_id: global-acc
            sync:
              vault: ~/global
              auto_sync: true
            """,
        )
        _write(
            isolated / ".kv_sync" / "config.yml",
            """\
            sync:
              vault: ./notes
            """,
        )
        merged = load_hierarchical_config()
        assert merged["cloudflare"] == {"account_id": "global-acc"}
        # Sections are replaced, not deep-merged
        assert merged["sync"] == {"vault": "./notes"}

    def test_env_var_interpolation_after_merge(self, isolated, monkeypatch):
        monkeypatch.setenv("TEST_CF_TOKEN", "from-env")
        _write(
            isolated / ".kv_sync" / "config.yml",
            "cloudflare:\n  api_token: ${TEST_CF_TOKEN}\n",
        )
        assert load_hierarchical_config()["cloudflare"]["api_token"] == "from-env"

    def test_non_dict_root_skipped(self, isolated):
        _write(isolated / ".kv_sync" / "config.yml", "- just\n- a list\n")
        assert load_hierarchical_config() == {}


class TestEnsureConfig:
    def test_creates_starter_file(self, isolated):
        path = ensure_config()
        assert path == isolated / ".kv_sync" / "config.yml"
        assert "CF_API_TOKEN" in path.read_text()
        # Starter file is all comments, so it loads as empty
        assert load_hierarchical_config() == {}

    def test_noop_when_exists(self, isolated):
        existing = _write(isolated / ".kv_sync" / "config.yml", "sync: {}\n")
        assert ensure_config() == existing
        assert existing.read_text() == "sync: {}\n"

    def test_uses_explicit_target(self, isolated):
        target = isolated / "custom" / "kv.yml"
        assert ensure_config(target) == target
        assert target.exists()
