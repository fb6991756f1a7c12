"""Orchestra configuration loader."""

import os
import re
import typing
from collections.abc import Callable
from dataclasses import fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from orchestra_core.errors import create_error
from orchestra_core.types import LogLevel, ValidationIssue, ValidationResult

from .models import OrchestraConfig

CONFIG_PATH_ENV = "ORCHESTRA_CONFIG_PATH"

# (section, key, integer) for values that must be strictly positive
_POSITIVE_VALUES: list[tuple[str, str, bool]] = [
    ("execution", "step_timeout_seconds", False),
    ("execution", "max_history", True),
    ("recovery", "error_log_size", True),
    ("events", "history_size", True),
    ("events", "dead_letter_size", True),
    ("events", "handler_timeout_seconds", False),
]

_POSITIVE_NESTED: list[tuple[str, str, str, bool]] = [
    ("recovery", "retry", "max_delay_seconds", False),
    ("recovery", "circuit_breaker", "failure_threshold", True),
    ("recovery", "circuit_breaker", "success_threshold", True),
    ("recovery", "circuit_breaker", "reset_timeout_seconds", False),
    ("recovery", "circuit_breaker", "half_open_max_calls", True),
]


def resolve_env_vars(value: str) -> str:
    """Resolve environment variable references in string.

    Supports:
    - ${VAR} - Required, error if not set
    - ${VAR:-default} - With default value
    - ${VAR:?error message} - Required with custom error

    Args:
        value: String with potential env var references

    Returns:
        String with env vars resolved

    Raises:
        ConfigError: If required var not set
    """
    pattern = r"\$\{([^}:]+)(?::([?-])([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        operator = match.group(2)  # '-' or '?' or None
        operand = match.group(3)  # default value or error message

        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value

        if operator == "-":
            return operand or ""
        if operator == "?":
            error_msg = operand or f"Required environment variable {var_name} not set"
            raise create_error("CONFIG_INVALID", detail=error_msg)
        raise create_error(
            "CONFIG_INVALID",
            detail=f"Required environment variable {var_name} not set",
        )

    return re.sub(pattern, replacer, value)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Override dictionary

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    if isinstance(data, str):
        return resolve_env_vars(data)
    return data


def _is_positive(value: Any, integer: bool) -> bool:
    if isinstance(value, bool):
        return False
    allowed: tuple[type, ...] = (int,) if integer else (int, float)
    return isinstance(value, allowed) and value > 0


class ConfigLoader:
    """Load and validate Orchestra configuration."""

    def __init__(self, logger: Any = None):
        """Initialize config loader.

        Args:
            logger: Optional OrchestraLogger instance
        """
        self._config: OrchestraConfig | None = None
        self._config_path: Path | None = None
        self._logger = logger
        self._change_callbacks: list[Callable[[OrchestraConfig], None]] = []

    @property
    def config_path(self) -> Path | None:
        """Path of the last loaded config file, if any."""
        return self._config_path

    def load(self, path: str | Path | None = None, use_defaults: bool = True) -> OrchestraConfig:
        """Load configuration from file.

        Resolution order if path not specified:
        1. ORCHESTRA_CONFIG_PATH environment variable
        2. ./orchestra-config.yaml
        3. ~/.orchestra/config.yaml
        4. If use_defaults=True and no file found, use default configuration

        Args:
            path: Optional path to config file
            use_defaults: If True, use default config when no file found

        Returns:
            Loaded OrchestraConfig instance

        Raises:
            ConfigError: If file not found (when use_defaults=False) or invalid
        """
        if path is None:
            path = self._resolve_config_path()

        config_path = Path(path)

        if not config_path.exists():
            if use_defaults:
                self._log(LogLevel.INFO, "No config file found, using default configuration")
                return self.load_defaults()
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Configuration file not found: {config_path}",
            )

        try:
            with config_path.open() as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Invalid YAML in config file: {e}",
                cause=e,
            ) from e

        if not isinstance(data, dict):
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Config file must contain a mapping: {config_path}",
            )

        data = _resolve_env_vars_recursive(data)

        return self.load_from_dict(data, config_path)

    def load_defaults(self) -> OrchestraConfig:
        """Load default configuration without a file.

        Returns:
            OrchestraConfig with default values
        """
        return self.load_from_dict({})

    def load_from_dict(
        self, data: dict[str, Any], config_path: Path | None = None
    ) -> OrchestraConfig:
        """Load configuration from dictionary.

        Args:
            data: Configuration dictionary
            config_path: Optional path to config file (for tracking)

        Returns:
            Loaded OrchestraConfig instance

        Raises:
            ConfigError: If configuration is invalid
        """
        validation = self.validate(data)
        if not validation.valid:
            error_messages = [f"- {issue.path}: {issue.message}" for issue in validation.errors]
            raise create_error(
                "CONFIG_INVALID",
                detail="Configuration validation failed:\n" + "\n".join(error_messages),
            )

        for warning in validation.warnings:
            self._log(LogLevel.WARN, warning.message)

        try:
            config = self._dict_to_config(data)
        except (TypeError, ValueError) as e:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Failed to parse configuration: {e}",
                cause=e,
            ) from e

        self._config = config
        self._config_path = config_path

        self._log(LogLevel.INFO, "Configuration loaded successfully")

        return config

    def validate(self, data: dict[str, Any]) -> ValidationResult:
        """Validate config data without loading.

        Args:
            data: Configuration dictionary

        Returns:
            ValidationResult with errors and warnings
        """
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        valid_keys = {f.name for f in fields(OrchestraConfig)}

        for key, section in data.items():
            if key not in valid_keys:
                warnings.append(
                    ValidationIssue(
                        path=key,
                        message=f"Unknown configuration key: {key}",
                        severity="warning",
                    )
                )
            elif not isinstance(section, dict):
                errors.append(
                    ValidationIssue(
                        path=key,
                        message=f"{key} must be a dictionary",
                    )
                )

        for section, key, integer in _POSITIVE_VALUES:
            values = data.get(section)
            if not isinstance(values, dict) or values.get(key) is None:
                continue
            if not _is_positive(values[key], integer):
                kind = "integer" if integer else "number"
                errors.append(
                    ValidationIssue(
                        path=f"{section}.{key}",
                        message=f"{key} must be a positive {kind}",
                    )
                )

        for section, subsection, key, integer in _POSITIVE_NESTED:
            values = data.get(section)
            if not isinstance(values, dict):
                continue
            nested = values.get(subsection)
            if not isinstance(nested, dict) or key not in nested:
                continue
            if not _is_positive(nested[key], integer):
                kind = "integer" if integer else "number"
                errors.append(
                    ValidationIssue(
                        path=f"{section}.{subsection}.{key}",
                        message=f"{key} must be a positive {kind}",
                    )
                )

        recovery = data.get("recovery")
        retry = recovery.get("retry") if isinstance(recovery, dict) else None
        if isinstance(retry, dict):
            max_retries = retry.get("max_retries")
            if max_retries is not None and (
                isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 0
            ):
                errors.append(
                    ValidationIssue(
                        path="recovery.retry.max_retries",
                        message="max_retries must be a non-negative integer",
                    )
                )

        return ValidationResult(valid=True, errors=errors, warnings=warnings)

    def get(self) -> OrchestraConfig:
        """Get current configuration.

        Raises:
            ConfigError: If configuration not loaded
        """
        if self._config is None:
            raise create_error("CONFIG_INVALID", detail="Configuration not loaded")
        return self._config

    def reload(self) -> OrchestraConfig:
        """Reload configuration from file and notify registered callbacks.

        Returns:
            Reloaded OrchestraConfig instance

        Raises:
            ConfigError: If no config path set or reload fails
        """
        if self._config_path is None:
            raise create_error("CONFIG_INVALID", detail="No config path set, cannot reload")

        new_config = self.load(self._config_path)

        for callback in self._change_callbacks:
            try:
                callback(new_config)
            except Exception as e:
                self._log(LogLevel.ERROR, f"Config change callback failed: {e}")

        return new_config

    def on_change(self, callback: Callable[[OrchestraConfig], None]) -> None:
        """Register callback for config changes.

        Args:
            callback: Function to call when config changes
        """
        self._change_callbacks.append(callback)

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger:
            self._logger._log(level, "config", message)

    def _resolve_config_path(self) -> Path:
        """Resolve config file path using resolution order."""
        # 1. ORCHESTRA_CONFIG_PATH environment variable
        env_path = os.environ.get(CONFIG_PATH_ENV)
        if env_path:
            return Path(env_path)

        # 2. ./orchestra-config.yaml
        local_path = Path("orchestra-config.yaml")
        if local_path.exists():
            return local_path

        # 3. ~/.orchestra/config.yaml
        home_path = Path.home() / ".orchestra" / "config.yaml"
        if home_path.exists():
            return home_path

        # Not found - use local path as default
        return local_path

    def _dict_to_config(self, data: dict[str, Any]) -> OrchestraConfig:
        kwargs: dict[str, Any] = {}

        for field in fields(OrchestraConfig):
            if field.name in data:
                kwargs[field.name] = self._convert_field(field.type, data[field.name])

        return OrchestraConfig(**kwargs)

    def _convert_field(self, field_type: Any, value: Any) -> Any:
        """Convert field value to appropriate type.

        Args:
            field_type: Expected field type
            value: Value to convert

        Returns:
            Converted value
        """
        if value is None:
            return None

        origin = typing.get_origin(field_type)

        if origin is list:
            if not isinstance(value, list):
                return value
            args = typing.get_args(field_type)
            if args:
                return [self._convert_field(args[0], item) for item in value]
            return value

        if origin is dict:
            if not isinstance(value, dict):
                return value
            args = typing.get_args(field_type)
            if args and len(args) == 2:
                return {k: self._convert_field(args[1], v) for k, v in value.items()}
            return value

        if hasattr(field_type, "__dataclass_fields__"):
            if isinstance(value, dict):
                kwargs = {}
                for f in fields(field_type):
                    if f.name in value:
                        kwargs[f.name] = self._convert_field(f.type, value[f.name])
                return field_type(**kwargs)
            return value

        if isinstance(field_type, type) and issubclass(field_type, Enum):
            if isinstance(value, str):
                return field_type(value)
            return value

        return value
