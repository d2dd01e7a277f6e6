"""Configuration loading and management."""

import os
import warnings
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from ..utils.logging import ConfigurationError

# Suppress Pydantic serialization warnings globally for config operations
warnings.filterwarnings("ignore", message=".*Pydantic serializer warnings.*")

ENV_PREFIX = "TERMPLEX_"


class TermplexConfig(BaseModel):
    """Configuration model for termplex."""

    # Web interface
    web_host: str = Field(default="127.0.0.1", description="Web interface host")
    web_port: int = Field(default=3000, description="Web interface port")
    max_message_size: int = Field(
        default=1024 * 1024, description="Maximum inbound WebSocket frame in bytes"
    )
    max_connections: int = Field(
        default=100, description="Maximum concurrent WebSocket connections"
    )

    # Sessions
    shell: str | None = Field(
        default=None, description="Shell to spawn (defaults to $SHELL, then /bin/sh)"
    )
    login_shell: bool = Field(default=True, description="Start shells as login shells")
    output_batch_ms: int = Field(
        default=16, description="Output batching window in milliseconds"
    )
    terminate_grace_period: float = Field(
        default=1.0, description="Seconds between SIGHUP and SIGKILL on teardown"
    )
    cwd_poll_interval: float = Field(
        default=5.0, description="Working directory polling interval in seconds"
    )

    # tmux integration
    tmux_client_poll_interval: float = Field(
        default=2.0, description="Attached-client polling interval in seconds"
    )
    tmux_session_poll_interval: float = Field(
        default=5.0, description="Session list polling interval in seconds"
    )
    tmux_command_timeout: float = Field(
        default=5.0, description="Timeout for a single tmux query in seconds"
    )
    tmux_failure_threshold: int = Field(
        default=3, description="Consecutive query failures before backing off"
    )
    tmux_max_backoff: float = Field(
        default=30.0, description="Upper bound for a backed-off poll interval"
    )
    tmux_env_prefix: str = Field(
        default="TMUX",
        description="Variables starting with this prefix are stripped for attach",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str | None = Field(default=None, description="Log file path")
    structured_logging: bool = Field(
        default=False, description="Emit JSON structured logs"
    )

    def resolve_shell(self) -> str:
        """Return the shell binary used for plain sessions."""
        return self.shell or os.environ.get("SHELL") or "/bin/sh"


def find_config_file(custom_path: str | None = None) -> Path | None:
    """Find configuration file in standard locations."""
    if custom_path:
        path = Path(custom_path).expanduser()
        if path.exists():
            return path
        raise FileNotFoundError(f"Config file not found: {custom_path}")

    search_paths = [
        Path.cwd() / "termplex.yaml",
        Path.cwd() / "termplex.yml",
        Path.home() / ".config" / "termplex" / "config.yaml",
        Path.home() / ".termplex.yaml",
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def load_config_file(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    try:
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file {config_path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to read config file {config_path}: {e}")


_INT_KEYS = {
    "web_port",
    "max_message_size",
    "max_connections",
    "output_batch_ms",
    "tmux_failure_threshold",
}
_FLOAT_KEYS = {
    "terminate_grace_period",
    "cwd_poll_interval",
    "tmux_client_poll_interval",
    "tmux_session_poll_interval",
    "tmux_command_timeout",
    "tmux_max_backoff",
}
_BOOL_KEYS = {"login_shell", "structured_logging"}


def load_env_vars() -> dict[str, Any]:
    """Load configuration from TERMPLEX_* environment variables."""
    config: dict[str, Any] = {}

    for config_key in TermplexConfig.model_fields:
        env_var = f"{ENV_PREFIX}{config_key.upper()}"
        if env_var not in os.environ:
            continue
        env_value = os.environ[env_var]
        if config_key in _INT_KEYS:
            try:
                config[config_key] = int(env_value)
            except ValueError:
                continue
        elif config_key in _FLOAT_KEYS:
            try:
                config[config_key] = float(env_value)
            except ValueError:
                continue
        elif config_key in _BOOL_KEYS:
            config[config_key] = env_value.lower() in ("true", "1", "yes", "on")
        else:
            config[config_key] = env_value

    return config


def load_config(
    config_path: str | None = None,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> TermplexConfig:
    """Load configuration from file and environment variables.

    Precedence order (highest to lowest):
    1. CLI flag overrides
    2. Environment variables
    3. Configuration file (with profile support)
    4. Default values
    """
    config_data: dict[str, Any] = {}

    config_file = find_config_file(config_path)
    if config_file:
        file_data = load_config_file(config_file)
        config_data.update({k: v for k, v in file_data.items() if k != "profiles"})

        if profile and profile in file_data.get("profiles", {}):
            config_data.update(file_data["profiles"][profile])

    config_data.update(load_env_vars())

    if cli_overrides:
        config_data.update(cli_overrides)

    try:
        return TermplexConfig(**config_data)
    except Exception as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def save_config(config: TermplexConfig, config_path: str | None = None) -> Path:
    """Save configuration to file."""
    if config_path:
        path = Path(config_path).expanduser()
    else:
        config_dir = Path.home() / ".config" / "termplex"
        config_dir.mkdir(parents=True, exist_ok=True)
        path = config_dir / "config.yaml"

    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", message=".*Pydantic serializer warnings.*")
        config_dict = config.model_dump()
    with open(path, "w") as f:
        yaml.dump(config_dict, f, default_flow_style=False, sort_keys=True)

    return path
