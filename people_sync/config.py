"""
Configuration loading and management for People Sync.

This module handles loading configuration from YAML files and environment variables,
with validation and defaults.
"""

import os
import re
import yaml
import logging
from typing import Dict, Any, List, Optional

from people_sync.filters import Filters, FilterError
from people_sync.mapping import AttributeMap, AttributeMapError, load_attribute_map

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = 'config.yaml'
DEFAULT_VERBOSITY = 5

ENV_PLACEHOLDER = re.compile(r'\$(?:(\$)|\{([A-Za-z_][A-Za-z0-9_]*)\})')


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


class RuntimeConfig:
    """Global runtime flags."""

    def __init__(self, dry_run_mode: bool = False, verbosity: int = DEFAULT_VERBOSITY):
        self.dry_run_mode = dry_run_mode
        self.verbosity = verbosity


class SyncSet:
    """One named pairing of a source query with a destination target."""

    def __init__(self, name: str, source: Optional[Dict[str, Any]] = None,
                 destination: Optional[Dict[str, Any]] = None, enabled: bool = True):
        self.name = name
        self.source = source or {}
        self.destination = destination or {}
        self.enabled = enabled

    def __repr__(self):
        return f"SyncSet(name={self.name!r}, enabled={self.enabled})"


class AppConfig:
    """Typed view over a validated configuration dictionary."""

    def __init__(self, data: Dict[str, Any]):
        self.data = data

        runtime = data.get('runtime', {})
        self.runtime = RuntimeConfig(
            dry_run_mode=bool(runtime.get('dry_run_mode', False)),
            verbosity=int(runtime.get('verbosity', DEFAULT_VERBOSITY))
        )
        self.source = data.get('source', {})
        self.destination = data.get('destination', {})
        self.notifications = data.get('notifications', {})
        self.logging = data.get('logging', {})
        self.attribute_map: List[AttributeMap] = load_attribute_map(data.get('attribute_map', []))
        self.sync_sets = [
            SyncSet(
                name=s.get('name', ''),
                source=s.get('source'),
                destination=s.get('destination'),
                enabled=bool(s.get('enabled', True))
            )
            for s in data.get('sync_sets', [])
        ]

    def enabled_sync_sets(self) -> List[SyncSet]:
        return [s for s in self.sync_sets if s.enabled]

    def max_sync_set_name_length(self) -> int:
        return max((len(s.name) for s in self.sync_sets), default=0)


def substitute_env_vars(text: str, environ: Optional[Dict[str, str]] = None) -> str:
    """
    Replace ``${NAME}`` placeholders with environment variable values.

    ``$$`` yields a literal ``$``.

    Raises:
        ConfigurationError: If a referenced variable is not defined
    """
    environ = os.environ if environ is None else environ
    missing = []

    def _replace(match):
        if match.group(1):
            return '$'
        name = match.group(2)
        if name not in environ:
            missing.append(name)
            return ''
        return environ[name]

    result = ENV_PLACEHOLDER.sub(_replace, text)
    if missing:
        raise ConfigurationError(f"Undefined environment variable(s) in config: {', '.join(sorted(set(missing)))}")
    return result


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    # Environment variable mappings for sensitive fields
    ENV_OVERRIDES = {
        'notifications.smtp_password': 'SMTP_PASSWORD',
        'source.auth.password': 'SOURCE_PASSWORD',
        'source.bind_password': 'LDAP_BIND_PASSWORD',
        'destination.auth.password': 'DESTINATION_PASSWORD',
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CONFIG_PATH env var or 'config.yaml'
        """
        self.config_path = config_path or os.getenv('CONFIG_PATH', DEFAULT_CONFIG_FILE)
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        logger.info(f"Using config file: {self.config_path}")
        try:
            with open(self.config_path, 'r') as f:
                raw = f.read()
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        return self.load_string(raw)

    def load_string(self, raw: str) -> Dict[str, Any]:
        """Parse, override, validate and default configuration text."""
        try:
            self.config = yaml.safe_load(substitute_env_vars(raw)) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self.config, dict):
            raise ConfigurationError("Configuration root must be a mapping")

        self._apply_env_overrides()
        self._validate()
        self._apply_defaults()

        logger.info(f"Configuration loaded. Source type: {self.config['source']['type']}, "
                    f"Destination type: {self.config['destination']['type']}")
        sync_sets = self.config.get('sync_sets', [])
        logger.info(f"{len(sync_sets)} Sync sets found:")
        for i, sync_set in enumerate(sync_sets, 1):
            logger.info(f"  {i}) {sync_set.get('name')}")
        return self.config

    def _apply_env_overrides(self):
        """Apply environment variable overrides for sensitive fields."""
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                self._set_nested_value(self.config, config_key, env_value)
                logger.debug(f"Applied environment override for {config_key}")

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def _validate(self):
        """Validate required configuration fields."""
        errors = []

        source = self.config.get('source') or {}
        if not source.get('type'):
            errors.append("configuration appears to be missing a Source configuration")

        destination = self.config.get('destination') or {}
        if not destination.get('type'):
            errors.append("configuration appears to be missing a Destination configuration")

        attribute_map = self.config.get('attribute_map') or []
        if not attribute_map:
            errors.append("configuration appears to be missing an AttributeMap")
        else:
            try:
                load_attribute_map(attribute_map)
            except AttributeMapError as e:
                errors.append(str(e))

        try:
            Filters.from_config(source.get('filters')).validate()
        except FilterError as e:
            errors.append(f"source.filters: {e}")

        names = set()
        for i, sync_set in enumerate(self.config.get('sync_sets') or []):
            name = sync_set.get('name')
            if not name:
                errors.append(f"Missing name for sync_sets[{i}]")
            elif name in names:
                errors.append(f"Duplicate sync set name: {name}")
            names.add(name)

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        runtime_defaults = {
            'dry_run_mode': False,
            'verbosity': DEFAULT_VERBOSITY
        }
        runtime_config = self.config.setdefault('runtime', {})
        for key, value in runtime_defaults.items():
            runtime_config.setdefault(key, value)

        destination_defaults = {
            'disable_add': False,
            'disable_update': False,
            'disable_delete': False
        }
        for key, value in destination_defaults.items():
            self.config['destination'].setdefault(key, value)

        # Logging defaults
        logging_defaults = {
            'level': 'INFO',
            'log_dir': 'logs',
            'retention_days': 7,
            'console_output': True,
            'console_level': 'INFO'
        }
        logging_config = self.config.setdefault('logging', {})
        for key, value in logging_defaults.items():
            logging_config.setdefault(key, value)

        # Notification defaults
        notification_defaults = {
            'enable_email': True,
            'email_on_failure': True,
            'email_on_success': False,
            'smtp_port': 587,
            'smtp_tls': True,
            'subject': 'People Sync Alert'
        }
        notification_config = self.config.setdefault('notifications', {})
        for key, value in notification_defaults.items():
            notification_config.setdefault(key, value)

        sync_sets = self.config.setdefault('sync_sets', [])
        for sync_set in sync_sets:
            sync_set.setdefault('enabled', True)
            sync_set.setdefault('source', {})
            sync_set.setdefault('destination', {})


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file

    Returns:
        Validated application configuration
    """
    loader = ConfigLoader(config_path)
    return AppConfig(loader.load())
