"""Configuration management utilities."""

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import yaml
from pydantic import ValidationError

from ..core.constants import CONFIG_FILE_NAME
from ..models.config import OrchConfig
from ..services.exceptions import ConfigError

CONFIG_ENV_VAR = "ORCH_CONFIG"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _as_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _as_json_dict(value: str) -> Dict[str, str]:
    parsed = json.loads(value)
    if not isinstance(parsed, dict):
        raise ValueError("expected a JSON object")
    return parsed


# env var -> (section, key, converter)
ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "GITHUB_TOKEN": ("github", "token", str),
    "GITHUB_WEBHOOK_SECRET": ("github", "webhook_secret", str),
    "ADO_ORG": ("ado", "organization", str),
    "ADO_PAT": ("ado", "pat", str),
    "MAX_CONCURRENT_TASKS": ("assistant", "max_concurrent_tasks", int),
    "CLAUDE_TIMEOUT": ("assistant", "timeout_seconds", float),
    "REPOS_BASE_DIR": ("repos", "base_dir", str),
    "REPOS_MAPPING": ("repos", "mapping", _as_json_dict),
    "REPOS_AUTO_SCAN": ("repos", "auto_scan", _as_bool),
    "POLLING_ENABLED": ("polling", "enabled", _as_bool),
    "POLLING_INTERVAL": ("polling", "interval_seconds", float),
    "PORT": ("server", "port", int),
}

SECRET_KEYS = {("github", "token"), ("github", "webhook_secret"), ("ado", "pat")}


def default_config_path() -> Path:
    return Path(os.environ.get(CONFIG_ENV_VAR) or Path.cwd() / CONFIG_FILE_NAME)


class ConfigManager:
    """Loads orchestrator configuration from YAML plus environment overrides."""

    def __init__(self, config_file: Optional[Path] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """Initialize config manager.

        Args:
            config_file: YAML file to read; defaults to $ORCH_CONFIG or ./orch.yaml
            environ: Environment used for overrides (defaults to os.environ)
        """
        self.config_file = Path(config_file) if config_file else default_config_path()
        self.environ = os.environ if environ is None else environ

    def _read_file(self) -> Dict[str, Any]:
        if not self.config_file.exists():
            return {}
        try:
            data = yaml.safe_load(self.config_file.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_file}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_file} must contain a mapping")
        return data

    def _apply_env(self, data: Dict[str, Any]) -> Dict[str, Any]:
        for env_var, (section, key, convert) in ENV_OVERRIDES.items():
            raw = self.environ.get(env_var)
            if raw is None or raw == "":
                continue
            try:
                value = convert(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid value for {env_var}: {e}") from e
            data.setdefault(section, {})[key] = value
        return data

    def load(self) -> OrchConfig:
        """Load configuration.

        Raises:
            ConfigError: If the file or an override is invalid
        """
        data = self._apply_env(self._read_file())
        try:
            return OrchConfig(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def save(self, config: OrchConfig) -> None:
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(
            yaml.safe_dump(config.model_dump(), sort_keys=False, default_flow_style=False)
        )

    def data_dir(self, config: OrchConfig) -> Path:
        """Runtime state directory; relative paths are anchored at the config file."""
        path = Path(config.data_dir).expanduser()
        if not path.is_absolute():
            path = self.config_file.resolve().parent / path
        return path


def masked_config(config: OrchConfig) -> Dict[str, Any]:
    """Config as a dict with secrets replaced by asterisks."""
    data = config.model_dump()
    for section, key in SECRET_KEYS:
        if data.get(section, {}).get(key):
            data[section][key] = "********"
    return data
