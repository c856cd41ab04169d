"""Unit tests for config.py - Configuration management."""

import os
import pytest
from unittest.mock import patch

import config
from backoff_policy import BackOffPolicy
from config import (
    BackOffConfig,
    WatchConfig,
    ResourceConfig,
    HealthConfig,
    Config,
    load_config,
    get_config,
    reset_config,
)

WATCH_ENV = {
    "CR_GROUP": "example.com",
    "CR_VERSION": "v1",
    "CR_PLURAL": "databases",
}


class TestBackOffConfig:
    """Tests for BackOffConfig class."""

    def test_default_values(self):
        """Test default configuration values."""
        cfg = BackOffConfig()
        assert cfg.initial_interval == 0.5
        assert cfg.multiplier == 1.5
        assert cfg.max_interval == 60.0
        assert cfg.jitter == 0.5
        assert cfg.max_elapsed_time == 900.0
        assert cfg.max_attempts is None

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        env_vars = {
            "BACKOFF_INITIAL_INTERVAL": "1",
            "BACKOFF_MULTIPLIER": "2",
            "BACKOFF_MAX_INTERVAL": "30",
            "BACKOFF_JITTER": "0",
            "BACKOFF_MAX_ELAPSED_TIME": "120",
            "BACKOFF_MAX_ATTEMPTS": "10",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            cfg = BackOffConfig.from_env()
            assert cfg.initial_interval == 1.0
            assert cfg.multiplier == 2.0
            assert cfg.max_interval == 30.0
            assert cfg.jitter == 0.0
            assert cfg.max_elapsed_time == 120.0
            assert cfg.max_attempts == 10

    def test_from_env_defaults(self):
        """Test that defaults are used when env vars not set."""
        with patch.dict(os.environ, {}, clear=True):
            assert BackOffConfig.from_env() == BackOffConfig()

    @pytest.mark.parametrize("value", ["", "none", "None"])
    def test_from_env_unbounded_elapsed_time(self, value):
        """Test that the elapsed time limit can be disabled."""
        with patch.dict(os.environ, {"BACKOFF_MAX_ELAPSED_TIME": value}, clear=True):
            cfg = BackOffConfig.from_env()
            assert cfg.max_elapsed_time is None

    def test_to_policy(self):
        """Test building a backoff policy."""
        cfg = BackOffConfig(initial_interval=2, max_attempts=4)
        policy = cfg.to_policy()
        assert isinstance(policy, BackOffPolicy)
        assert policy.initial_interval == 2
        assert policy.max_attempts == 4
        assert cfg.to_policy() is not policy


class TestWatchConfig:
    """Tests for WatchConfig class."""

    def test_default_values(self):
        """Test default configuration values."""
        cfg = WatchConfig()
        assert cfg.scope == "Namespaced"
        assert cfg.namespace is None
        assert cfg.resync_period == 300
        assert cfg.ensure_crd is False

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        env_vars = {
            **WATCH_ENV,
            "CR_KIND": "Database",
            "CR_SCOPE": "Cluster",
            "WATCH_NAMESPACE": "production",
            "RESYNC_PERIOD": "60",
            "ENSURE_CRD": "true",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            cfg = WatchConfig.from_env()
            assert cfg.group == "example.com"
            assert cfg.version == "v1"
            assert cfg.plural == "databases"
            assert cfg.kind == "Database"
            assert cfg.scope == "Cluster"
            assert cfg.namespace == "production"
            assert cfg.resync_period == 60
            assert cfg.ensure_crd is True

    def test_from_env_all_namespaces(self):
        """Test that an empty namespace watches all namespaces."""
        with patch.dict(os.environ, {**WATCH_ENV, "WATCH_NAMESPACE": ""}, clear=True):
            cfg = WatchConfig.from_env()
            assert cfg.namespace is None

    def test_from_env_missing_resource_raises(self):
        """Test that a missing group/version/plural raises ValueError."""
        with patch.dict(os.environ, {"CR_GROUP": "example.com"}, clear=True):
            with pytest.raises(ValueError) as exc_info:
                WatchConfig.from_env()
            assert "CR_VERSION" in str(exc_info.value)
            assert "CR_PLURAL" in str(exc_info.value)
            assert "CR_GROUP" not in str(exc_info.value)

    def test_from_env_ensure_crd_requires_kind(self):
        """Test that ENSURE_CRD without CR_KIND raises ValueError."""
        with patch.dict(os.environ, {**WATCH_ENV, "ENSURE_CRD": "true"}, clear=True):
            with pytest.raises(ValueError) as exc_info:
                WatchConfig.from_env()
            assert "CR_KIND" in str(exc_info.value)


class TestResourceConfig:
    """Tests for ResourceConfig class."""

    def test_default_values(self):
        """Test default configuration values."""
        cfg = ResourceConfig()
        assert cfg.retry is True
        assert cfg.metrics is True

    def test_from_env_disabled(self):
        """Test disabling the decorators."""
        env_vars = {"RETRY_RESOURCES": "false", "METRICS_RESOURCES": "FALSE"}
        with patch.dict(os.environ, env_vars, clear=True):
            cfg = ResourceConfig.from_env()
            assert cfg.retry is False
            assert cfg.metrics is False


class TestHealthConfig:
    """Tests for HealthConfig class."""

    def test_default_values(self):
        """Test default configuration values."""
        cfg = HealthConfig()
        assert cfg.host == "0.0.0.0"
        assert cfg.port == 8080
        assert cfg.enabled is True
        assert cfg.log_level == "INFO"

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        env_vars = {
            "HEALTH_HOST": "127.0.0.1",
            "HEALTH_PORT": "9090",
            "HEALTH_ENABLED": "false",
            "LOG_LEVEL": "DEBUG",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            cfg = HealthConfig.from_env()
            assert cfg.host == "127.0.0.1"
            assert cfg.port == 9090
            assert cfg.enabled is False
            assert cfg.log_level == "DEBUG"


class TestConfig:
    """Tests for main Config class."""

    def test_default(self):
        """Test default configuration."""
        cfg = Config.default()
        assert isinstance(cfg.backoff, BackOffConfig)
        assert isinstance(cfg.watch, WatchConfig)
        assert isinstance(cfg.resources, ResourceConfig)
        assert isinstance(cfg.health, HealthConfig)

    def test_from_env(self):
        """Test loading full configuration from environment."""
        env_vars = {**WATCH_ENV, "BACKOFF_MAX_ATTEMPTS": "5", "HEALTH_PORT": "9000"}
        with patch.dict(os.environ, env_vars, clear=True):
            cfg = Config.from_env()
            assert cfg.watch.plural == "databases"
            assert cfg.backoff.max_attempts == 5
            assert cfg.health.port == 9000


class TestConfigSingleton:
    """Tests for config singleton functions."""

    def setup_method(self):
        """Reset config before each test."""
        reset_config()

    def teardown_method(self):
        """Reset config after each test."""
        reset_config()

    def test_load_config_creates_singleton(self):
        """Test that load_config creates a singleton."""
        with patch.dict(os.environ, WATCH_ENV, clear=True):
            cfg1 = load_config()
            cfg2 = load_config()
            assert cfg1 is cfg2

    def test_get_config_loads_if_none(self):
        """Test that get_config loads config if not already loaded."""
        with patch.dict(os.environ, WATCH_ENV, clear=True):
            assert config.config is None
            cfg = get_config()
            assert cfg is not None
            assert config.config is cfg

    def test_reset_config(self):
        """Test that reset_config clears the singleton."""
        with patch.dict(os.environ, WATCH_ENV, clear=True):
            load_config()
            assert config.config is not None
            reset_config()
            assert config.config is None
