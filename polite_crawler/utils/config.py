"""
Configuration management for the web crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union, get_args, get_origin, get_type_hints
from dataclasses import dataclass, fields, replace

from ..exceptions import ConfigError


ROBOTS_FAILURE_POLICIES = ('allow', 'deny')
RETRY_BACKOFF_STRATEGIES = ('fixed', 'exponential')


@dataclass(frozen=True)
class CrawlerConfig:
    """Immutable snapshot of the crawl engine settings for one run."""
    user_agent: str = "Mozilla/5.0 (CDVA WAIS Security AdvancedJavaCrawler/1.0)"
    max_depth: int = 3
    request_timeout_millis: int = 5000
    max_retries: int = 3
    retry_delay_millis: int = 2000
    domain_delay_millis: int = 1000
    respect_robots_txt: bool = True
    same_domain_only: bool = True
    start_url: str = "https://iaac-aeic.gc.ca/050/evaluations/index?culture=en-CA"
    robots_timeout_millis: int = 3000
    robots_failure_policy: str = 'allow'
    retry_backoff: str = 'fixed'
    max_concurrent_requests: int = 1
    max_pages: Optional[int] = None
    max_content_bytes: int = 10 * 1024 * 1024
    stats_interval_seconds: float = 30.0

    @property
    def request_timeout(self) -> float:
        return self.request_timeout_millis / 1000

    @property
    def retry_delay(self) -> float:
        return self.retry_delay_millis / 1000

    @property
    def domain_delay(self) -> float:
        return self.domain_delay_millis / 1000

    @property
    def robots_timeout(self) -> float:
        return self.robots_timeout_millis / 1000


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: str = 'logs/crawler.log'
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    json: bool = False


@dataclass(frozen=True)
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass(frozen=True)
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig
    logging: LoggingConfig
    monitoring: MonitoringConfig


def _build_section(section_cls, data: Optional[Dict[str, Any]], name: str):
    """Build a config dataclass from a YAML mapping, rejecting unknown keys."""
    if data is None:
        return section_cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")

    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in section '{name}': {', '.join(sorted(unknown))}")

    _check_types(section_cls, data, name)
    return section_cls(**data)


def _matches_type(value, expected) -> bool:
    if get_origin(expected) is Union:
        return any(_matches_type(value, arg) for arg in get_args(expected))
    if expected is type(None):
        return value is None
    # bool is an int subclass, but `max_depth: yes` is still a mistake
    if isinstance(value, bool) and expected is not bool:
        return False
    if expected is float:
        return isinstance(value, (int, float))
    return isinstance(value, expected)


def _check_types(section_cls, data: Dict[str, Any], name: str):
    """Raise ConfigError for values whose type does not match the dataclass field."""
    hints = get_type_hints(section_cls)
    for key, value in data.items():
        expected = hints[key]
        if not _matches_type(value, expected):
            type_name = getattr(expected, '__name__', str(expected))
            raise ConfigError(
                f"{name}.{key} must be of type {type_name}, got {type(value).__name__} {value!r}"
            )


def validate_crawler_config(config: CrawlerConfig):
    """Validate crawler configuration values."""
    if not config.start_url:
        raise ConfigError("start_url must be provided")

    if not config.user_agent:
        raise ConfigError("user_agent must not be empty")

    if config.max_depth < 0:
        raise ConfigError("max_depth must be non-negative")

    if config.max_retries < 1:
        raise ConfigError("max_retries must be at least 1")

    for name in ('request_timeout_millis', 'robots_timeout_millis'):
        if getattr(config, name) <= 0:
            raise ConfigError(f"{name} must be positive")

    for name in ('retry_delay_millis', 'domain_delay_millis'):
        if getattr(config, name) < 0:
            raise ConfigError(f"{name} must be non-negative")

    if config.max_concurrent_requests < 1:
        raise ConfigError("max_concurrent_requests must be at least 1")

    if config.max_pages is not None and config.max_pages < 1:
        raise ConfigError("max_pages must be at least 1 when set")

    if config.max_content_bytes < 1:
        raise ConfigError("max_content_bytes must be positive")

    if config.robots_failure_policy not in ROBOTS_FAILURE_POLICIES:
        raise ConfigError("robots_failure_policy must be 'allow' or 'deny'")

    if config.retry_backoff not in RETRY_BACKOFF_STRATEGIES:
        raise ConfigError("retry_backoff must be 'fixed' or 'exponential'")


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            try:
                config_data = yaml.safe_load(file) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigError(f"Top level of {self.config_path} must be a mapping")

        self._config = Config(
            crawler=_build_section(CrawlerConfig, config_data.get('crawler'), 'crawler'),
            logging=_build_section(LoggingConfig, config_data.get('logging'), 'logging'),
            monitoring=_build_section(MonitoringConfig, config_data.get('monitoring'), 'monitoring')
        )

        self._validate_config()
        return self._config

    def apply_overrides(self, **overrides) -> Config:
        """Return the loaded config with crawler fields replaced; None values are ignored."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        if changes:
            _check_types(CrawlerConfig, changes, 'crawler')
            self._config = replace(self.config, crawler=replace(self.config.crawler, **changes))
            self._validate_config()
        return self.config

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ConfigError("Configuration not loaded")

        validate_crawler_config(self._config.crawler)

        if not isinstance(logging.getLevelName(self._config.logging.level.upper()), int):
            raise ConfigError(f"Unknown log level: {self._config.logging.level}")

        logging.getLogger(__name__).debug("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
