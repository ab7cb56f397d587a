"""Configuration for pm-assistant: YAML config files plus Jira connection settings."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger()

CONFIG_DIR_NAME = ".pm-assistant"

# Environment variables take precedence over config file keys.
JIRA_SETTING_SOURCES: dict[str, tuple[str, str]] = {
    "base_url": ("JIRA_BASE_URL", "jira.base_url"),
    "email": ("JIRA_EMAIL", "jira.email"),
    "api_token": ("JIRA_API_TOKEN", "jira.api_token"),
}


class Config:
    """Configuration manager using YAML file storage.

    Local config is stored in .pm-assistant/config.yaml in the current directory.
    Global config is stored in ~/.pm-assistant/config.yaml.

    When reading, values are looked up in local config first, then global config.
    """

    def __init__(self, use_global: bool = False, config_dir: Path | None = None) -> None:
        """Initialize configuration manager.

        Args:
            use_global: If True, use global config only. If False, use local config with global fallback.
            config_dir: Custom directory to store config file (overrides use_global)
        """
        if config_dir is not None:
            self.config_dir = Path(config_dir)
            self.is_global = use_global
        elif use_global:
            self.config_dir = Path.home() / CONFIG_DIR_NAME
            self.is_global = True
        else:
            self.config_dir = Path.cwd() / CONFIG_DIR_NAME
            self.is_global = False

        self.config_file = self.config_dir / "config.yaml"
        self._config: dict[str, Any] = self._load()

        self._global_config: dict[str, Any] = {}
        if not self.is_global:
            global_config_file = Path.home() / CONFIG_DIR_NAME / "config.yaml"
            if global_config_file.exists() and global_config_file != self.config_file:
                try:
                    with open(global_config_file, "r") as f:
                        self._global_config = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    logger.warning("Failed to load global config", error=str(e))

        logger.debug("Config initialized", config_file=str(self.config_file), is_global=self.is_global)

    def _load(self) -> dict[str, Any]:
        if not self.config_file.exists():
            logger.debug("Config file does not exist, initializing empty config")
            return {}

        try:
            with open(self.config_file, "r") as f:
                config = yaml.safe_load(f) or {}
                logger.debug("Config loaded successfully", keys=list(config.keys()))
                return config
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load config", error=str(e))
            raise ValueError(f"Failed to load config from {self.config_file}: {e}") from e

    def _save(self) -> None:
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)
            logger.debug("Config saved successfully")
        except OSError as e:
            logger.error("Failed to save config", error=str(e))
            raise ValueError(f"Failed to save config to {self.config_file}: {e}") from e

    def get(self, key: str, default: str | None = None) -> str | None:
        """Get a configuration value, falling back to global config for local instances."""
        if key in self._config:
            logger.debug("Getting config value from local", key=key)
            return self._config[key]

        if not self.is_global and key in self._global_config:
            logger.debug("Getting config value from global", key=key)
            return self._global_config[key]

        logger.debug("Config value not found", key=key)
        return default

    def set(self, key: str, value: str) -> None:
        logger.debug("Setting config value", key=key)
        self._config[key] = value
        self._save()

    def unset(self, key: str) -> None:
        logger.debug("Unsetting config value", key=key)
        if key in self._config:
            del self._config[key]
            self._save()

    def list(self) -> dict[str, str]:
        """List all configuration settings.

        For local config, merges global config with local config (local takes precedence).
        """
        if self.is_global:
            logger.debug("Listing global config values", count=len(self._config))
            return self._config.copy()
        merged = self._global_config.copy()
        merged.update(self._config)
        logger.debug("Listing merged config values", count=len(merged))
        return merged


def get_config(use_global: bool = False) -> Config:
    """Get a configuration instance.

    Args:
        use_global: If True, return global config. If False, return local config with global fallback.
    """
    return Config(use_global=use_global)


@dataclass(frozen=True)
class JiraSettings:
    """Connection settings for the Jira client."""

    base_url: str | None = None
    email: str | None = None
    api_token: str | None = None

    def missing_fields(self) -> list[str]:
        """Names of the required settings that are empty or absent."""
        return [name for name in JIRA_SETTING_SOURCES if not getattr(self, name)]


def load_jira_settings(config: Config | None = None) -> JiraSettings:
    """Collect Jira settings from the environment, then the config files.

    Missing values are left as None; the client reports them when it is built.
    """
    values: dict[str, str | None] = {}
    for name, (env_var, config_key) in JIRA_SETTING_SOURCES.items():
        value = os.environ.get(env_var, "").strip()
        if not value and config is not None:
            value = str(config.get(config_key) or "").strip()
        values[name] = value or None

    if values["base_url"]:
        values["base_url"] = values["base_url"].rstrip("/")

    settings = JiraSettings(**values)
    logger.debug("Jira settings loaded", base_url=settings.base_url, missing=settings.missing_fields())
    return settings
