"""
Configuration module for the operator framework.

Loads configuration from environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional

from backoff_policy import BackOffPolicy


def _optional_float(name: str, default: Optional[str]) -> Optional[float]:
    value = os.getenv(name, default)
    if value is None or value == "" or value.lower() == "none":
        return None
    return float(value)


def _optional_int(name: str, default: Optional[str]) -> Optional[int]:
    value = os.getenv(name, default)
    if value is None or value == "" or value.lower() == "none":
        return None
    return int(value)


def _bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class BackOffConfig:
    """Exponential backoff used by every retrying call site."""

    initial_interval: float = 0.5  # seconds
    multiplier: float = 1.5
    max_interval: float = 60.0  # seconds
    jitter: float = 0.5  # seconds
    max_elapsed_time: Optional[float] = 900.0  # seconds (15 minutes)
    max_attempts: Optional[int] = None

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            initial_interval=float(os.getenv("BACKOFF_INITIAL_INTERVAL", "0.5")),
            multiplier=float(os.getenv("BACKOFF_MULTIPLIER", "1.5")),
            max_interval=float(os.getenv("BACKOFF_MAX_INTERVAL", "60")),
            jitter=float(os.getenv("BACKOFF_JITTER", "0.5")),
            max_elapsed_time=_optional_float("BACKOFF_MAX_ELAPSED_TIME", "900"),
            max_attempts=_optional_int("BACKOFF_MAX_ATTEMPTS", None),
        )

    def to_policy(self) -> BackOffPolicy:
        """Build a new policy following this configuration."""
        return BackOffPolicy(
            initial_interval=self.initial_interval,
            multiplier=self.multiplier,
            max_interval=self.max_interval,
            jitter=self.jitter,
            max_elapsed_time=self.max_elapsed_time,
            max_attempts=self.max_attempts,
        )


@dataclass
class WatchConfig:
    """The custom resource being watched."""

    group: str = ""
    version: str = ""
    plural: str = ""
    kind: str = ""
    scope: str = "Namespaced"
    namespace: Optional[str] = None  # None = all namespaces
    resync_period: int = 300  # seconds
    ensure_crd: bool = False

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        group = os.getenv("CR_GROUP", "")
        version = os.getenv("CR_VERSION", "")
        plural = os.getenv("CR_PLURAL", "")
        missing = [
            name
            for name, value in (
                ("CR_GROUP", group),
                ("CR_VERSION", version),
                ("CR_PLURAL", plural),
            )
            if not value
        ]
        if missing:
            raise ValueError(
                f"{', '.join(missing)} environment variable(s) must be set. "
                "The watched custom resource cannot be empty."
            )

        ensure_crd = _bool("ENSURE_CRD", "false")
        kind = os.getenv("CR_KIND", "")
        if ensure_crd and not kind:
            raise ValueError("CR_KIND must be set when ENSURE_CRD is true.")

        return cls(
            group=group,
            version=version,
            plural=plural,
            kind=kind,
            scope=os.getenv("CR_SCOPE", "Namespaced"),
            namespace=os.getenv("WATCH_NAMESPACE") or None,
            resync_period=int(os.getenv("RESYNC_PERIOD", "300")),
            ensure_crd=ensure_crd,
        )


@dataclass
class ResourceConfig:
    """Decorators applied to every resource chain."""

    retry: bool = True
    metrics: bool = True

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            retry=_bool("RETRY_RESOURCES", "true"),
            metrics=_bool("METRICS_RESOURCES", "true"),
        )


@dataclass
class HealthConfig:
    """Health and metrics HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            host=os.getenv("HEALTH_HOST", "0.0.0.0"),
            port=int(os.getenv("HEALTH_PORT", "8080")),
            enabled=_bool("HEALTH_ENABLED", "true"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@dataclass
class Config:
    """Main configuration object."""

    backoff: BackOffConfig
    watch: WatchConfig
    resources: ResourceConfig
    health: HealthConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            backoff=BackOffConfig.from_env(),
            watch=WatchConfig.from_env(),
            resources=ResourceConfig.from_env(),
            health=HealthConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            backoff=BackOffConfig(),
            watch=WatchConfig(),
            resources=ResourceConfig(),
            health=HealthConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
