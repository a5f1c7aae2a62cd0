"""Serra device agent: provisioning, heartbeat, config sync, telemetry and commands."""

__version__ = "0.1.0"
