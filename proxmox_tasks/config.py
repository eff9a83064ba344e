"""
Configuration and exit codes for proxmox-tasks.
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

import platformdirs
from rich.console import Console

err_console = Console(stderr=True)

APP_NAME = "proxmox-tasks"


class ExitCode(Enum):
    """Standard exit codes for CLI operations."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    INVALID_INPUT = 2
    NOT_FOUND = 3
    PERMISSION_DENIED = 4
    TIMEOUT = 5
    SERVER_ERROR = 6


class ConfigError(Exception):
    """Raised when required settings are missing or unparsable."""


@dataclass
class Config:
    """Connection and task-polling settings."""

    host: str
    port: int = 8006
    user: str = "root@pam"
    token_name: str = ""
    token_value: str = ""
    verify_ssl: bool = True
    ca_cert_path: Optional[str] = None
    connect_timeout: int = 10
    read_timeout: int = 30
    poll_interval: float = 1.0
    task_timeout: float = 0.0
    max_transient_errors: int = 3
    profile: str = "default"

    @staticmethod
    def _parse_bool(value: Optional[str], default: bool = True) -> bool:
        """Parse boolean values from environment variables."""
        if value is None:
            return default
        return value.strip().lower() in ("1", "true", "yes", "on")

    @classmethod
    def get_config_path(cls, profile: str = "default") -> Path:
        """Get the configuration file path following XDG standards."""
        config_dir = Path(platformdirs.user_config_dir(APP_NAME))
        return config_dir / (f"config.{profile}.ini" if profile != "default" else "config.ini")

    @classmethod
    def _load_config_file(cls, config_path: Path) -> configparser.ConfigParser:
        config = configparser.ConfigParser()
        if config_path.exists():
            try:
                config.read(config_path)
                if os.getenv("PROXMOX_DEBUG"):
                    err_console.print(f"[dim]Loaded config from: {config_path}[/dim]")
            except configparser.Error as e:
                err_console.print(
                    f"[yellow]Warning: Failed to read config file {config_path}: {e}[/yellow]"
                )
        return config

    @classmethod
    def from_env(cls, profile: str = "default", config_path: Optional[Path] = None) -> "Config":
        """Load configuration from config file and environment variables.

        Priority order (highest to lowest):
        1. Environment variables (PROXMOX_*)
        2. Config file in XDG config directory (~/.config/proxmox-tasks/config.ini)
        3. Default values
        """
        config_path = config_path or cls.get_config_path(profile)
        config = cls._load_config_file(config_path)

        section = profile if config.has_section(profile) else "proxmox"
        if not config.has_section(section):
            section = "DEFAULT"

        def get_value(key: str, default: str = "") -> str:
            env_value = os.getenv(f"PROXMOX_{key}")
            if env_value:
                return env_value
            if config.has_option(section, key.lower()):
                return config.get(section, key.lower())
            return default

        token_name = get_value("TOKEN_NAME")
        token_value = get_value("TOKEN_VALUE")
        if not token_name or not token_value:
            raise ConfigError(
                "PROXMOX_TOKEN_NAME and PROXMOX_TOKEN_VALUE must be set "
                f"(environment or {config_path})"
            )

        try:
            return cls(
                host=get_value("HOST", "localhost"),
                port=int(get_value("PORT", "8006")),
                user=get_value("USER", "root@pam"),
                token_name=token_name,
                token_value=token_value,
                verify_ssl=cls._parse_bool(get_value("VERIFY_SSL", "true"), default=True),
                ca_cert_path=get_value("CA_CERT_PATH") or None,
                connect_timeout=int(get_value("CONNECT_TIMEOUT", "10")),
                read_timeout=int(get_value("READ_TIMEOUT", "30")),
                poll_interval=float(get_value("POLL_INTERVAL", "1.0")),
                task_timeout=float(get_value("TASK_TIMEOUT", "0")),
                max_transient_errors=int(get_value("MAX_TRANSIENT_ERRORS", "3")),
                profile=profile,
            )
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

    def validate(self) -> bool:
        if not self.host or not self.token_name or not self.token_value:
            return False
        return self.poll_interval > 0 and self.task_timeout >= 0 and self.max_transient_errors >= 0
