"""
Configuration Loader

Loads e2e.config.yaml, selects one environment and resolves ${VAR}
references from the process environment.

Loading order:
1. e2e.config.yaml (or the path given)
2. e2e.config.local.yaml next to it (optional, deep-merged, gitignored)

    version: "1.0"
    environments:
      local:
        baseUrl: "http://localhost:3000"
        adapters:
          postgresql:
            connectionString: "${POSTGRESQL_CONNECTION_STRING}"
    defaults:
      timeout: 30000
      retries: 0
      retryDelay: 1000
      parallel: 1
    variables:
      testPrefix: "e2e_test_"
    reporters:
      - type: console
    hooks:
      beforeAll: hooks/seed.py
"""

import logging
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "e2e.config.yaml"
LOCAL_CONFIG_FILE = "e2e.config.local.yaml"
DEFAULT_ENVIRONMENT = "local"
SUPPORTED_VERSION = "1.0"

ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


@dataclass
class Defaults:
    timeout: int = 30000
    retries: int = 0
    retry_delay: int = 1000
    parallel: int = 1


@dataclass
class EnvironmentConfig:
    name: str
    base_url: str = ""
    adapters: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class LoadedConfig:
    """A config file resolved for one environment."""

    environment: EnvironmentConfig
    defaults: Defaults = field(default_factory=Defaults)
    variables: Dict[str, Any] = field(default_factory=dict)
    reporters: List[Dict[str, Any]] = field(default_factory=lambda: [{"type": "console"}])
    hooks: Dict[str, str] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)
    path: Optional[str] = None

    @property
    def environment_name(self) -> str:
        return self.environment.name


class ConfigLoader:
    """Load and merge configuration from YAML files."""

    def __init__(self, config_path: str = DEFAULT_CONFIG_FILE, environment: str = DEFAULT_ENVIRONMENT):
        self.config_path = Path(config_path)
        self.environment = environment
        self._cache: Dict[str, LoadedConfig] = {}

    def load(self) -> LoadedConfig:
        """
        Load the config for this loader's environment.

        Raises:
            ConfigurationError: missing file, bad YAML, unsupported version,
                unknown environment or unresolved ${VAR} in baseUrl
        """
        if self.environment in self._cache:
            return self._cache[self.environment]

        raw = self.load_raw()
        config = build_config(raw, self.environment, str(self.config_path.resolve()))
        self._cache[self.environment] = config
        return config

    def load_raw(self) -> Dict[str, Any]:
        path = self.config_path
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path.resolve()}",
                hint='Run "e2e init" to create a template configuration',
            )

        raw = _read_yaml(path)

        local_path = path.with_name(LOCAL_CONFIG_FILE)
        if local_path.exists():
            logger.debug(f"Applying local overrides from {local_path}")
            raw = self._merge_config(raw, _read_yaml(local_path))

        return raw

    def _merge_config(self, base: Dict, override: Dict) -> Dict:
        """Deep merge override config into base config."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse configuration file: {e}",
            hint="Check YAML syntax in the configuration file",
        ) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file must contain a mapping: {path}")
    return data


def build_config(raw: Dict[str, Any], environment: str, path: Optional[str] = None) -> LoadedConfig:
    """Validate a parsed config document and resolve it for one environment."""
    version = str(raw.get("version")) if raw.get("version") is not None else None
    if version != SUPPORTED_VERSION:
        raise ConfigurationError(
            f"Unsupported configuration version: {raw.get('version')}",
            hint=f'Use version "{SUPPORTED_VERSION}"',
        )

    environments = raw.get("environments") or {}
    env_raw = environments.get(environment)
    if not env_raw:
        available = ", ".join(environments) or "none"
        raise ConfigurationError(
            f"Environment not found: {environment}",
            hint=f"Available environments: {available}",
        )

    env_config = EnvironmentConfig(
        name=environment,
        base_url=resolve_environment_variables(env_raw.get("baseUrl", ""), strict=True),
        adapters=resolve_environment_variables(env_raw.get("adapters") or {}, strict=False),
    )

    defaults_raw = raw.get("defaults") or {}
    defaults = Defaults(
        timeout=defaults_raw.get("timeout", 30000),
        retries=defaults_raw.get("retries", 0),
        retry_delay=defaults_raw.get("retryDelay", 1000),
        parallel=defaults_raw.get("parallel", 1),
    )

    return LoadedConfig(
        environment=env_config,
        defaults=defaults,
        variables=resolve_environment_variables(raw.get("variables") or {}, strict=False),
        reporters=list(raw.get("reporters") or [{"type": "console"}]),
        hooks=dict(raw.get("hooks") or {}),
        raw=raw,
        path=path,
    )


def load_config(config_path: str = DEFAULT_CONFIG_FILE, environment: str = DEFAULT_ENVIRONMENT) -> LoadedConfig:
    return ConfigLoader(config_path, environment).load()


def resolve_environment_variables(value: Any, strict: bool = True, env: Optional[Dict[str, str]] = None) -> Any:
    """
    Replace ${VAR} in every string of a nested structure.

    strict=True raises ConfigurationError for unset variables; otherwise
    the placeholder is left as written.
    """
    env = os.environ if env is None else env

    if isinstance(value, str):

        def replace_var(match):
            name = match.group(1)
            if name in env:
                return env[name]
            if strict:
                raise ConfigurationError(
                    f"Missing environment variable: {name}",
                    hint=f"Set the {name} environment variable before running tests",
                )
            return match.group(0)

        return ENV_VAR_PATTERN.sub(replace_var, value)

    if isinstance(value, list):
        return [resolve_environment_variables(v, strict, env) for v in value]
    if isinstance(value, dict):
        return {k: resolve_environment_variables(v, strict, env) for k, v in value.items()}
    return value


def validate_adapter_connection_strings(
    environment: EnvironmentConfig, required_adapters: Optional[List[str]] = None
) -> List[str]:
    """
    Problems with the connection strings of the adapters a run needs.

    Reports adapters with no connection string and ones that still hold
    an unresolved ${VAR}. http needs no connection string.
    """
    problems = []
    for name, settings in (environment.adapters or {}).items():
        if name == "http":
            continue
        if required_adapters is not None and name not in required_adapters:
            continue
        connection_string = (settings or {}).get("connectionString")
        if not connection_string:
            problems.append(f"{name}: missing connectionString")
            continue
        match = ENV_VAR_PATTERN.search(str(connection_string))
        if match:
            problems.append(f"{name}: missing environment variable {match.group(1)}")
    return problems


def merge_config_with_options(
    config: LoadedConfig,
    timeout: Optional[int] = None,
    retries: Optional[int] = None,
    parallel: Optional[int] = None,
    reporters: Optional[List[str]] = None,
) -> LoadedConfig:
    """Apply CLI overrides. The given config is left untouched."""
    defaults = replace(
        config.defaults,
        timeout=timeout if timeout is not None else config.defaults.timeout,
        retries=retries if retries is not None else config.defaults.retries,
        parallel=parallel if parallel is not None else config.defaults.parallel,
    )
    merged_reporters = [{"type": r} for r in reporters] if reporters else config.reporters
    return replace(config, defaults=defaults, reporters=merged_reporters)


def find_config_file(start_dir: str = ".") -> Optional[str]:
    """Look for e2e.config.yaml in start_dir and its parents."""
    current = Path(start_dir).resolve()
    for directory in [current, *current.parents]:
        candidate = directory / DEFAULT_CONFIG_FILE
        if candidate.exists():
            return str(candidate)
    return None


def create_default_config() -> str:
    return """# E2E Test Runner Configuration
version: "1.0"

environments:
  local:
    baseUrl: "http://localhost:3000"
    adapters:
      postgresql:
        connectionString: "${POSTGRESQL_CONNECTION_STRING}"
      redis:
        connectionString: "${REDIS_CONNECTION_STRING}"
      mongodb:
        connectionString: "${MONGODB_CONNECTION_STRING}"
        database: "e2e"

defaults:
  timeout: 30000
  retries: 1
  retryDelay: 1000
  parallel: 4

variables:
  testPrefix: "e2e_test_"

reporters:
  - type: console
    verbose: true
  - type: junit
    output: "./reports/junit.xml"
"""


def init_config(config_path: str = DEFAULT_CONFIG_FILE) -> str:
    """Write the default config. Refuses to overwrite an existing file."""
    path = Path(config_path).resolve()
    if path.exists():
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Delete the existing file or use a different path",
        )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(create_default_config(), encoding="utf-8")
    return str(path)
