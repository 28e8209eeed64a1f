"""
Configuration Tests

Tests for loading, merging and resolving e2e.config.yaml.
"""
import pytest

from e2e_runner.config import (
    ConfigLoader,
    EnvironmentConfig,
    find_config_file,
    init_config,
    load_config,
    merge_config_with_options,
    resolve_environment_variables,
    validate_adapter_connection_strings,
)
from e2e_runner.errors import ConfigurationError


class TestLoadConfig:
    """Test loading a config file."""

    def test_defaults_and_environment(self, config_file):
        """Sections map onto the loaded config."""
        config = load_config(str(config_file), "local")

        assert config.environment_name == "local"
        assert config.environment.base_url == "http://localhost:3000"
        assert config.defaults.timeout == 5000
        assert config.defaults.retry_delay == 10
        assert config.defaults.parallel == 2
        assert config.variables == {"testPrefix": "e2e_"}
        assert config.reporters == [{"type": "console"}]
        assert config.path == str(config_file.resolve())

    def test_unresolved_adapter_variable_is_kept(self, config_file, monkeypatch):
        """Adapter settings keep unset ${VAR} for later validation."""
        monkeypatch.delenv("E2E_TEST_REDIS_URL", raising=False)
        config = load_config(str(config_file))
        assert config.environment.adapters["redis"]["connectionString"] == "${E2E_TEST_REDIS_URL}"

    def test_adapter_variable_resolved(self, config_file, monkeypatch):
        """Set variables are substituted."""
        monkeypatch.setenv("E2E_TEST_REDIS_URL", "redis://localhost:6379")
        config = load_config(str(config_file))
        assert config.environment.adapters["redis"]["connectionString"] == "redis://localhost:6379"

    def test_unknown_environment(self, config_file):
        """Unknown environments list the available ones."""
        with pytest.raises(ConfigurationError) as exc:
            load_config(str(config_file), "prod")
        assert "Environment not found: prod" in str(exc.value)
        assert exc.value.hint == "Available environments: local, staging"

    def test_missing_file(self, tmp_path):
        """A missing file suggests e2e init."""
        with pytest.raises(ConfigurationError) as exc:
            load_config(str(tmp_path / "e2e.config.yaml"))
        assert "e2e init" in exc.value.hint

    def test_bad_version(self, tmp_path):
        """Only version 1.0 is supported."""
        path = tmp_path / "e2e.config.yaml"
        path.write_text('version: "2.0"\nenvironments: {local: {baseUrl: x}}\n', encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Unsupported configuration version"):
            load_config(str(path))

    def test_strict_base_url(self, tmp_path, monkeypatch):
        """An unset variable in baseUrl is an error."""
        monkeypatch.delenv("E2E_TEST_BASE", raising=False)
        path = tmp_path / "e2e.config.yaml"
        path.write_text('version: "1.0"\nenvironments: {local: {baseUrl: "${E2E_TEST_BASE}"}}\n', encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Missing environment variable: E2E_TEST_BASE"):
            load_config(str(path))

    def test_local_override_merges(self, config_file):
        """e2e.config.local.yaml is deep-merged on top."""
        config_file.with_name("e2e.config.local.yaml").write_text(
            "defaults:\n  parallel: 8\nvariables:\n  extra: 1\n", encoding="utf-8"
        )
        config = load_config(str(config_file))
        assert config.defaults.parallel == 8
        assert config.defaults.timeout == 5000
        assert config.variables == {"testPrefix": "e2e_", "extra": 1}

    def test_loader_caches(self, config_file):
        """The same loader returns the cached config."""
        loader = ConfigLoader(str(config_file), "staging")
        assert loader.load() is loader.load()


class TestHelpers:
    """Test config helper functions."""

    def test_resolve_nested(self):
        """Lists and dicts are walked."""
        env = {"HOST": "db"}
        value = {"a": ["postgres://${HOST}/x", 5], "b": "${NOPE}"}
        assert resolve_environment_variables(value, strict=False, env=env) == {
            "a": ["postgres://db/x", 5],
            "b": "${NOPE}",
        }

    def test_connection_string_problems(self):
        """Missing and unresolved connection strings are reported."""
        env = EnvironmentConfig(
            name="local",
            adapters={
                "http": {},
                "postgresql": {"connectionString": "${PG_URL}"},
                "redis": {},
                "mongodb": {"connectionString": "mongodb://localhost"},
            },
        )
        assert validate_adapter_connection_strings(env) == [
            "postgresql: missing environment variable PG_URL",
            "redis: missing connectionString",
        ]
        assert validate_adapter_connection_strings(env, ["mongodb"]) == []

    def test_merge_options(self, config_file):
        """CLI overrides replace defaults without touching the original."""
        config = load_config(str(config_file))
        merged = merge_config_with_options(config, timeout=100, reporters=["json", "junit"])

        assert merged.defaults.timeout == 100
        assert merged.defaults.retries == 1
        assert merged.reporters == [{"type": "json"}, {"type": "junit"}]
        assert config.defaults.timeout == 5000

    def test_find_config_file(self, config_file, tmp_path):
        """Parent directories are searched."""
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(str(nested)) == str(config_file.resolve())

    def test_init_config(self, tmp_path):
        """init writes a loadable template once."""
        path = tmp_path / "cfg" / "e2e.config.yaml"
        init_config(str(path))
        assert load_config(str(path)).defaults.parallel == 4
        with pytest.raises(ConfigurationError, match="already exists"):
            init_config(str(path))
