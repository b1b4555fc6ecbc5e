"""Telemetry configuration module.

This module provides configuration for the collector connection, host
sampling and logging, loadable from environment variables or a YAML file.
"""

import os
from dataclasses import Field, dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar, Union, get_args, get_origin

import yaml

from pizzametrics.exceptions import ConfigurationError

T = TypeVar("T")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_value(name: str, default: str, convert: Callable[[str], T]) -> T:
    raw = os.getenv(name, default)
    try:
        return convert(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from e


def _field_value(section: str, config_field: Field, value: Any) -> Any:
    """Check a file value against the dataclass field type."""
    expected = config_field.type
    if get_origin(expected) is Union:
        if value is None:
            return None
        expected = next(t for t in get_args(expected) if t is not type(None))

    is_bool = isinstance(value, bool)
    if expected is float and isinstance(value, int) and not is_bool:
        return float(value)
    if isinstance(value, expected) and (expected is bool or not is_bool):
        return value
    raise ConfigurationError(
        f"Invalid value for {section}.{config_field.name}: {value!r} "
        f"(expected {expected.__name__})"
    )


@dataclass
class CollectorConfig:
    """Configuration for the remote metrics collector."""

    enabled: bool = True
    url: Optional[str] = None
    api_key: Optional[str] = None
    source: str = "jwt-pizza-service"
    period_ms: int = 10000
    timeout: float = 10.0  # seconds
    service_name: Optional[str] = None

    @property
    def period_seconds(self) -> float:
        """Flush period in seconds."""
        return self.period_ms / 1000.0

    @classmethod
    def from_env(cls) -> "CollectorConfig":
        """Create configuration from environment variables."""
        return cls(
            enabled=_env_flag("PIZZA_METRICS_ENABLED", "true"),
            url=os.getenv("PIZZA_METRICS_URL"),
            api_key=os.getenv("PIZZA_METRICS_API_KEY"),
            source=os.getenv("PIZZA_METRICS_SOURCE", "jwt-pizza-service"),
            period_ms=_env_value("PIZZA_METRICS_PERIOD_MS", "10000", int),
            timeout=_env_value("PIZZA_METRICS_TIMEOUT", "10.0", float),
            service_name=os.getenv("PIZZA_SERVICE_NAME"),
        )


@dataclass
class SamplerConfig:
    """Configuration for host CPU and memory sampling."""

    precision: int = 2  # decimal places

    @classmethod
    def from_env(cls) -> "SamplerConfig":
        """Create configuration from environment variables."""
        return cls(precision=_env_value("PIZZA_SAMPLER_PRECISION", "2", int))


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""

    level: str = "INFO"
    format: str = "json"  # or "text"
    trace_correlation: bool = True
    output_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Create configuration from environment variables."""
        return cls(
            level=os.getenv("PIZZA_LOG_LEVEL", "INFO").upper(),
            format=os.getenv("PIZZA_LOG_FORMAT", "json").lower(),
            trace_correlation=_env_flag("PIZZA_LOG_TRACE_CORRELATION", "true"),
            output_file=os.getenv("PIZZA_LOG_FILE"),
        )


# Environment variable -> (section, field, converter)
_ENV_OVERRIDES = {
    "PIZZA_METRICS_ENABLED": ("collector", "enabled", lambda v: v.lower() == "true"),
    "PIZZA_METRICS_URL": ("collector", "url", str),
    "PIZZA_METRICS_API_KEY": ("collector", "api_key", str),
    "PIZZA_METRICS_SOURCE": ("collector", "source", str),
    "PIZZA_METRICS_PERIOD_MS": ("collector", "period_ms", int),
    "PIZZA_METRICS_TIMEOUT": ("collector", "timeout", float),
    "PIZZA_SERVICE_NAME": ("collector", "service_name", str),
    "PIZZA_SAMPLER_PRECISION": ("sampler", "precision", int),
    "PIZZA_LOG_LEVEL": ("logging", "level", lambda v: v.upper()),
    "PIZZA_LOG_FORMAT": ("logging", "format", lambda v: v.lower()),
    "PIZZA_LOG_TRACE_CORRELATION": (
        "logging",
        "trace_correlation",
        lambda v: v.lower() == "true",
    ),
    "PIZZA_LOG_FILE": ("logging", "output_file", str),
}


@dataclass
class TelemetryConfig:
    """Complete telemetry configuration.

    Example:
        >>> # Create from environment variables
        >>> config = TelemetryConfig.from_env()
        >>>
        >>> # Create from a YAML file, environment overriding the file
        >>> config = TelemetryConfig.from_yaml("telemetry.yaml")
        >>>
        >>> # Create programmatically
        >>> config = TelemetryConfig(
        ...     collector=CollectorConfig(
        ...         url="https://otlp.example.net/otlp/v1/metrics",
        ...         api_key="123:secret",
        ...     ),
        ... )
        >>> config.validate()
    """

    collector: CollectorConfig = field(default_factory=CollectorConfig)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "TelemetryConfig":
        """Create complete configuration from environment variables.

        Environment Variables:
            Collector:
                PIZZA_METRICS_ENABLED: Enable periodic export (default: true)
                PIZZA_METRICS_URL: OTLP/HTTP metrics endpoint
                PIZZA_METRICS_API_KEY: Bearer credential for the collector
                PIZZA_METRICS_SOURCE: Value of the ``source`` attribute
                    (default: jwt-pizza-service)
                PIZZA_METRICS_PERIOD_MS: Flush period in milliseconds (default: 10000)
                PIZZA_METRICS_TIMEOUT: HTTP timeout in seconds (default: 10.0)
                PIZZA_SERVICE_NAME: Optional ``service.name`` resource attribute

            Sampler:
                PIZZA_SAMPLER_PRECISION: Decimal places for CPU/memory (default: 2)

            Logging:
                PIZZA_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
                PIZZA_LOG_FORMAT: json or text (default: json)
                PIZZA_LOG_TRACE_CORRELATION: Include trace IDs in logs (default: true)
                PIZZA_LOG_FILE: Log file path (optional, defaults to stderr)

        Returns:
            Complete TelemetryConfig with all sub-configurations.
        """
        return cls(
            collector=CollectorConfig.from_env(),
            sampler=SamplerConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TelemetryConfig":
        """Create configuration from a nested dictionary.

        The dictionary uses the YAML layout: top-level ``metrics``,
        ``sampler`` and ``logging`` sections.

        Raises:
            ConfigurationError: If a section is malformed, has unknown keys or
                holds a value of the wrong type.
        """
        sections = {
            "metrics": CollectorConfig,
            "sampler": SamplerConfig,
            "logging": LoggingConfig,
        }
        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigurationError(f"Unknown configuration sections: {sorted(unknown)}")

        built = {}
        for section, config_cls in sections.items():
            values = data.get(section) or {}
            if not isinstance(values, dict):
                raise ConfigurationError(f"Section '{section}' must be a mapping")
            allowed = {f.name: f for f in fields(config_cls)}
            bad_keys = set(values) - set(allowed)
            if bad_keys:
                raise ConfigurationError(
                    f"Unknown keys in section '{section}': {sorted(bad_keys)}"
                )
            built[section] = config_cls(
                **{
                    key: _field_value(section, allowed[key], value)
                    for key, value in values.items()
                }
            )

        return cls(
            collector=built["metrics"],
            sampler=built["sampler"],
            logging=built["logging"],
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "TelemetryConfig":
        """Load configuration from a YAML file, then apply environment overrides.

        Raises:
            ConfigurationError: If the file cannot be read or parsed.
        """
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except IOError as e:
            raise ConfigurationError(f"Failed to read config file: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError("Config file must contain a mapping")

        config = cls.from_dict(data)
        config.apply_env_overrides()
        return config

    def apply_env_overrides(self) -> None:
        """Overwrite fields with any PIZZA_* environment variables that are set."""
        for env_name, (section, attr, convert) in _ENV_OVERRIDES.items():
            if os.getenv(env_name) is None:
                continue
            setattr(getattr(self, section), attr, _env_value(env_name, "", convert))

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        collector = self.collector
        if collector.enabled:
            if not collector.url:
                raise ConfigurationError("Collector URL required when export is enabled")
            if not collector.url.startswith(("http://", "https://")):
                raise ConfigurationError(
                    f"Collector URL must be http(s): {collector.url}"
                )
            if not collector.api_key:
                raise ConfigurationError("API key required when export is enabled")
        if collector.period_ms <= 0:
            raise ConfigurationError(f"Flush period must be positive: {collector.period_ms}")
        if collector.timeout <= 0:
            raise ConfigurationError(f"Timeout must be positive: {collector.timeout}")
        if not collector.source:
            raise ConfigurationError("Source attribute must not be empty")

        if not (0 <= self.sampler.precision <= 6):
            raise ConfigurationError(
                f"Sampler precision must be 0-6: {self.sampler.precision}"
            )

        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if self.logging.level not in valid_levels:
            raise ConfigurationError(
                f"Invalid log level: {self.logging.level}. Must be one of {valid_levels}"
            )
        if self.logging.format not in ("json", "text"):
            raise ConfigurationError(
                f"Invalid log format: {self.logging.format}. Must be 'json' or 'text'"
            )
