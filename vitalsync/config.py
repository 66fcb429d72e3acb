"""
Configuration for the reconciliation engine.

Values are layered in order of precedence: environment variables
(``VITALSYNC_<KEY>``), then a YAML or JSON file, then defaults. The merged
result is validated before use.
"""

import os
import json
import logging
from dataclasses import dataclass, asdict, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .models.errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "VITALSYNC_"


class ConfigSource(Enum):
    """Configuration sources in order of precedence."""
    ENVIRONMENT = "environment"
    FILE = "file"
    DEFAULT = "default"


@dataclass
class EngineConfig:
    """Complete engine configuration."""

    # Hospital API
    api_base_url: str = "http://127.0.0.1:8000"
    request_timeout_seconds: float = 30.0

    # Schedules
    poll_interval_seconds: float = 3.0
    alert_refresh_interval_seconds: float = 60.0

    # Prediction cache
    prediction_ttl_seconds: int = 3600
    prediction_store: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    prediction_storage_key: str = "vitalsync:patient_predictions"

    # Observability
    metrics_enabled: bool = True
    log_level: str = "INFO"
    environment: str = "development"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EngineConfig':
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class ConfigValidator:
    """Configuration validation with type checking and range rules."""

    def __init__(self):
        self.validation_rules = {
            'api_base_url': {
                'type': str,
                'prefixes': ('http://', 'https://'),
            },
            'request_timeout_seconds': {
                'type': (int, float),
                'min': 0.5,
                'max': 300.0,
            },
            'poll_interval_seconds': {
                'type': (int, float),
                'min': 0.1,
                'max': 3600.0,
            },
            'alert_refresh_interval_seconds': {
                'type': (int, float),
                'min': 1.0,
                'max': 3600.0,
            },
            'prediction_ttl_seconds': {
                'type': int,
                'min': 1,
                'max': 7 * 24 * 3600,
            },
            'prediction_store': {
                'type': str,
                'allowed_values': ['memory', 'redis'],
            },
            'log_level': {
                'type': str,
                'allowed_values': ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
            },
            'environment': {
                'type': str,
                'allowed_values': ['development', 'testing', 'staging', 'production'],
            },
        }

    def validate_config(self, config: EngineConfig) -> List[str]:
        """
        Validate configuration against rules.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        for key, value in config.to_dict().items():
            if key in self.validation_rules:
                errors.extend(self._validate_field(key, value, self.validation_rules[key]))
        return errors

    def _validate_field(self, field_name: str, value: Any, rules: Dict[str, Any]) -> List[str]:
        errors = []

        expected_type = rules.get('type')
        if expected_type and (not isinstance(value, expected_type) or isinstance(value, bool)):
            errors.append(f"{field_name}: unexpected type {type(value).__name__}")
            return errors

        if isinstance(value, (int, float)):
            min_val = rules.get('min')
            max_val = rules.get('max')
            if min_val is not None and value < min_val:
                errors.append(f"{field_name}: Value {value} below minimum {min_val}")
            if max_val is not None and value > max_val:
                errors.append(f"{field_name}: Value {value} above maximum {max_val}")

        allowed_values = rules.get('allowed_values')
        if allowed_values and value not in allowed_values:
            errors.append(f"{field_name}: Value '{value}' not in allowed values: {allowed_values}")

        prefixes = rules.get('prefixes')
        if prefixes and not value.startswith(prefixes):
            errors.append(f"{field_name}: Value '{value}' must start with one of {prefixes}")

        return errors


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning(f"Configuration file {path} does not exist")
        return {}

    suffix = path.suffix.lower()
    try:
        with open(path, 'r') as f:
            if suffix == '.json':
                data = json.load(f)
            elif suffix in ('.yml', '.yaml'):
                data = yaml.safe_load(f)
            else:
                raise ConfigurationError(f"Unsupported configuration file format: {path.suffix}")
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read configuration file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")
    return data


def _parse_env_value(env_value: str, target_type: type) -> Any:
    """Parse environment variable value to target type."""
    if target_type == bool:
        return env_value.lower() in ('true', '1', 'yes', 'on')
    elif target_type == int:
        return int(env_value)
    elif target_type == float:
        return float(env_value)
    else:
        return env_value


def load_config(path: Optional[str] = None,
                env: Optional[Mapping[str, str]] = None) -> EngineConfig:
    """
    Build the engine configuration from defaults, an optional file and the environment.

    Raises:
        ConfigurationError: if a source cannot be read or the result is invalid
    """
    env = os.environ if env is None else env
    values = EngineConfig().to_dict()
    sources = {key: ConfigSource.DEFAULT for key in values}

    if path:
        for key, value in _read_config_file(Path(path)).items():
            if key not in values:
                logger.warning(f"Ignoring unknown configuration key {key}")
                continue
            values[key] = value
            sources[key] = ConfigSource.FILE

    defaults = EngineConfig()
    for key in list(values):
        env_value = env.get(f"{ENV_PREFIX}{key.upper()}")
        if env_value is None:
            continue
        try:
            values[key] = _parse_env_value(env_value, type(getattr(defaults, key)))
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {ENV_PREFIX}{key.upper()}: {env_value}") from e
        sources[key] = ConfigSource.ENVIRONMENT

    # YAML and JSON both hand back ints for whole-number floats
    for f in fields(EngineConfig):
        if f.type in (float, 'float') and isinstance(values[f.name], int) and not isinstance(values[f.name], bool):
            values[f.name] = float(values[f.name])

    if isinstance(values['log_level'], str):
        values['log_level'] = values['log_level'].strip().upper()

    config = EngineConfig.from_dict(values)
    errors = ConfigValidator().validate_config(config)
    if errors:
        raise ConfigurationError(f"Configuration validation errors: {errors}")

    overridden = sorted(k for k, s in sources.items() if s != ConfigSource.DEFAULT)
    logger.info(f"Configuration loaded ({config.environment}); overridden keys: {overridden}")
    return config


def configure_logging(level: str = "INFO"):
    """Configure root logging for engine processes; the level is applied even if handlers already exist."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    logging.getLogger().setLevel(numeric_level)
