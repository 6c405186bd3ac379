"""Configuration management for neorg-task-sync."""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import click
import yaml

from .errors import ConfigError
from .parser import SectionConfig
from .sync.sync_models import SyncConfig


logger = logging.getLogger(__name__)

APP_NAME = "neorg-task-sync"
ENV_PREFIX = "NEORG_TASK_SYNC_"


def default_config_path() -> Path:
    """Platform config location, e.g. ``~/.config/neorg-task-sync/config.yaml``."""
    return Path(click.get_app_dir(APP_NAME)) / "config.yaml"


@dataclass
class ConfigModel:
    """Global configuration model for neorg-task-sync."""

    # Remote task list to sync with
    tasklist: str = ""

    # Document sections
    section_todos: str = "TODOs"
    section_todos_till_end_of_day: Optional[str] = None
    ignore_filenames: List[str] = field(default_factory=list)

    # Housekeeping
    clear_completed_tasks_older_than_days: Optional[int] = None
    backup_dir: Optional[str] = None

    # Remote calls
    max_concurrent_requests: int = 8
    max_retries: int = 3

    def __post_init__(self):
        if self.backup_dir:
            self.backup_dir = os.path.expanduser(self.backup_dir)
        if self.clear_completed_tasks_older_than_days is not None and self.clear_completed_tasks_older_than_days < 0:
            raise ConfigError("clear_completed_tasks_older_than_days must not be negative")
        if self.max_concurrent_requests < 1:
            raise ConfigError("max_concurrent_requests must be at least 1")
        if self.max_retries < 0:
            raise ConfigError("max_retries must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def to_yaml(self) -> str:
        """Serialize config to YAML."""
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConfigModel":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
        try:
            return cls(**data)
        except TypeError as e:
            raise ConfigError(str(e)) from e

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "ConfigModel":
        """Deserialize config from YAML."""
        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping")
        return cls.from_dict(data)

    def with_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> "ConfigModel":
        """Apply ``NEORG_TASK_SYNC_<KEY>`` environment variables.

        Lists are comma-separated, integers are parsed, and an empty value
        clears an optional setting.
        """
        environ = os.environ if environ is None else environ
        data = self.to_dict()
        defaults = ConfigModel().to_dict()
        for key in data:
            env_var = f"{ENV_PREFIX}{key.upper()}"
            if env_var not in environ:
                continue
            raw = environ[env_var].strip()
            default = defaults[key]
            if isinstance(default, list):
                data[key] = [item.strip() for item in raw.split(",") if item.strip()]
            elif isinstance(default, int) or key == "clear_completed_tasks_older_than_days":
                if raw == "":
                    data[key] = default
                    continue
                try:
                    data[key] = int(raw)
                except ValueError:
                    raise ConfigError(f"{env_var} must be an integer, got {raw!r}")
            elif raw == "" and default is None:
                data[key] = None
            else:
                data[key] = raw
            logger.debug(f"Config {key} overridden by {env_var}")
        return ConfigModel.from_dict(data)

    def sync_config(self) -> SyncConfig:
        """Freeze the settings the sync engine needs for one run."""
        return SyncConfig(
            tasklist=self.tasklist,
            sections=SectionConfig(
                todo_section=self.section_todos,
                end_of_day_section=self.section_todos_till_end_of_day or None,
                ignore_filenames=tuple(self.ignore_filenames),
            ),
            clear_completed_tasks_older_than_days=self.clear_completed_tasks_older_than_days,
            max_concurrent_requests=self.max_concurrent_requests,
            max_retries=self.max_retries,
            backup_dir=Path(self.backup_dir) if self.backup_dir else None,
        )


class Config:
    """Configuration manager for neorg-task-sync."""

    _instance: Optional[ConfigModel] = None
    _path: Optional[Path] = None

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> ConfigModel:
        """Load configuration from file and environment.

        A missing file yields the defaults.

        Raises:
            ConfigError: If the file exists but cannot be read or parsed
        """
        config_path = Path(config_path) if config_path else default_config_path()
        if cls._instance is not None and cls._path == config_path:
            return cls._instance

        cls._instance = cls.read(config_path).with_env_overrides()
        cls._path = config_path
        return cls._instance

    @classmethod
    def read(cls, config_path: Optional[Path] = None) -> ConfigModel:
        """Read the configuration file alone, without environment overrides."""
        config_path = Path(config_path) if config_path else default_config_path()
        config = ConfigModel()
        if config_path.exists():
            try:
                yaml_content = config_path.read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigError(f"Cannot read configuration: {e}", config_path) from e
            try:
                config = ConfigModel.from_yaml(yaml_content)
            except ConfigError as e:
                raise ConfigError(str(e), config_path) from e
            logger.debug(f"Loaded configuration from {config_path}")
        else:
            logger.debug(f"No configuration at {config_path}, using defaults")
        return config

    @classmethod
    def save(cls, config: ConfigModel, config_path: Optional[Path] = None) -> Path:
        """Save configuration to file."""
        config_path = Path(config_path) if config_path else default_config_path()
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            config_path.write_text(config.to_yaml(), encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot write configuration: {e}", config_path) from e
        logger.info(f"Configuration saved to {config_path}")
        cls._instance = None
        return config_path

    @classmethod
    def reload(cls, config_path: Optional[Path] = None) -> ConfigModel:
        """Reload configuration from file."""
        cls._instance = None
        return cls.load(config_path or cls._path)



def load_config(config_path: Optional[Path] = None) -> ConfigModel:
    """Load configuration from file."""
    return Config.load(config_path)


def save_config(config: ConfigModel, config_path: Optional[Path] = None) -> Path:
    """Save configuration to file."""
    return Config.save(config, config_path)
