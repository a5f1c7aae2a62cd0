"""Agent configuration loading."""

from serra_device.config.loader import AgentConfig, ConfigError, load_config

__all__ = ["AgentConfig", "ConfigError", "load_config"]
