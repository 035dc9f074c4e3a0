"""Configuration loading and runtime installation tests."""

import logging
import os

import pytest
import yaml

import pyglue
from pyglue import DescriptorResolutionError, GuestRuntime, IdentityCache
from pyglue._internal.context import peek_active_context
from pyglue.config import apply_env_overrides, default_config, load_config, validate_config

from .conftest import GUEST_SOURCES
from .fixtures.proxies import Missing, Widget


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("PYGLUE_SOURCE_PATH", "PYGLUE_IDENTITY_CACHE", "PYGLUE_DEBUG_CROSSINGS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def installed():
    """Uninstall whatever a test installs and restore the process Identity Cache."""
    previous = IdentityCache._instance
    yield
    pyglue.uninstall_runtime()
    IdentityCache.set_instance(previous)


class TestValidateConfig:
    def test_defaults(self):
        assert validate_config(None) == default_config()
        assert default_config()["identity_cache"] == "strong"

    def test_unknown_keys(self):
        with pytest.raises(ValueError, match="Unknown pyglue config keys"):
            validate_config({"source_path": ["x"]})

    def test_source_paths_must_be_a_list(self):
        with pytest.raises(ValueError, match="source_paths"):
            validate_config({"source_paths": "guest"})

    def test_identity_cache_policy(self):
        assert validate_config({"identity_cache": "weak"})["identity_cache"] == "weak"
        with pytest.raises(ValueError, match="identity_cache"):
            validate_config({"identity_cache": "lru"})

    def test_debug_crossings_must_be_bool(self):
        with pytest.raises(ValueError, match="boolean"):
            validate_config({"debug_crossings": "yes"})

    def test_not_a_mapping(self):
        with pytest.raises(ValueError, match="mapping"):
            validate_config(["source_paths"])


class TestLoadConfig:
    def test_yaml_file(self, tmp_path):
        config_path = tmp_path / "pyglue.yaml"
        config_path.write_text(
            yaml.safe_dump(
                {
                    "source_paths": ["guest", str(GUEST_SOURCES)],
                    "identity_cache": "weak",
                    "preload": ["widgets:Widget"],
                }
            )
        )
        config = load_config(config_path)
        assert config["source_paths"] == [str((tmp_path / "guest").resolve()), str(GUEST_SOURCES)]
        assert config["identity_cache"] == "weak"
        assert config["preload"] == ["widgets:Widget"]
        assert config["debug_crossings"] is False

    def test_empty_file(self, tmp_path):
        config_path = tmp_path / "empty.yaml"
        config_path.write_text("")
        assert load_config(config_path) == default_config()


class TestEnvOverrides:
    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("PYGLUE_SOURCE_PATH", os.pathsep.join(["/a", "/b"]))
        monkeypatch.setenv("PYGLUE_IDENTITY_CACHE", "weak")
        monkeypatch.setenv("PYGLUE_DEBUG_CROSSINGS", "1")
        merged = apply_env_overrides({"source_paths": ["/c"]})
        assert merged["source_paths"] == ["/a", "/b"]
        assert merged["identity_cache"] == "weak"
        assert merged["debug_crossings"] is True

    def test_input_not_mutated(self):
        config = {"source_paths": ["/c"]}
        apply_env_overrides(config)
        assert config == {"source_paths": ["/c"]}

    def test_bad_policy(self, monkeypatch):
        monkeypatch.setenv("PYGLUE_IDENTITY_CACHE", "sometimes")
        with pytest.raises(ValueError, match="PYGLUE_IDENTITY_CACHE"):
            apply_env_overrides({})


@pytest.mark.usefixtures("installed")
class TestInstallRuntime:
    def test_install_from_config(self, caplog):
        with caplog.at_level(logging.INFO, logger="pyglue"):
            context = pyglue.install_runtime(config={"source_paths": [str(GUEST_SOURCES)]})
        assert peek_active_context() is context
        assert isinstance(context.runtime, GuestRuntime)
        assert Widget("w").get_name() == "w"
        assert any("Installed embedded runtime" in r.getMessage() for r in caplog.records)

    def test_install_explicit_runtime(self):
        runtime = GuestRuntime([GUEST_SOURCES])
        context = pyglue.install_runtime(runtime)
        assert context.runtime is runtime

    def test_install_requires_sources(self):
        with pytest.raises(ValueError, match="source_paths"):
            pyglue.install_runtime()

    def test_install_rejects_non_runtime(self):
        with pytest.raises(TypeError, match="EmbeddedRuntime"):
            pyglue.install_runtime(object())

    def test_source_path_from_environment(self, monkeypatch):
        monkeypatch.setenv("PYGLUE_SOURCE_PATH", str(GUEST_SOURCES))
        context = pyglue.install_runtime()
        assert context.runtime.source_paths == [GUEST_SOURCES]

    def test_preload_targets(self):
        context = pyglue.install_runtime(
            config={"source_paths": [str(GUEST_SOURCES)], "preload": ["options:Options"]},
            preload=[Widget],
        )
        assert len(context.descriptors) == 2

    def test_preload_failure_aborts_install(self):
        runtime = GuestRuntime([GUEST_SOURCES])
        with pytest.raises(DescriptorResolutionError):
            pyglue.install_runtime(runtime, preload=[Missing])
        assert peek_active_context() is None
        assert runtime.closed

    def test_weak_policy(self):
        context = pyglue.install_runtime(
            config={"source_paths": [str(GUEST_SOURCES)], "identity_cache": "weak"}
        )
        assert context.identity.weak
        assert IdentityCache.get_instance() is context.identity

    def test_reinstall_replaces_and_closes_previous(self):
        first = pyglue.install_runtime(config={"source_paths": [str(GUEST_SOURCES)]})
        second = pyglue.install_runtime(config={"source_paths": [str(GUEST_SOURCES)]})
        assert peek_active_context() is second
        assert first.runtime.closed

    def test_uninstall(self):
        context = pyglue.install_runtime(config={"source_paths": [str(GUEST_SOURCES)]})
        Widget("w")
        pyglue.uninstall_runtime()
        assert peek_active_context() is None
        assert context.runtime.closed
        assert len(context.identity) == 0
        pyglue.uninstall_runtime()
