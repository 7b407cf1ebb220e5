"""
MAC tracker configuration.

Host credentials are NOT stored in the inventory database. Passwords live in
a separate credentials file (/var/lib/mac-tracker/host_creds.yaml) keyed by
host name, so a leaked inventory never carries switch secrets.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class HostCredentials:
    """SSH credentials for one host."""
    username: Optional[str] = None
    password: Optional[str] = None
    private_key_path: Optional[str] = None


@dataclass
class TrackerConfig:
    """
    MAC tracker configuration.

    Timeouts bound each host query; run_timeout_seconds optionally bounds a
    whole job run (None keeps runs unbounded).
    """

    # Scanning behavior
    mac_table_command: str = "show mac address-table"
    host_timeout_seconds: int = 45
    connect_timeout_seconds: int = 30
    max_concurrent_hosts: int = 4
    run_timeout_seconds: Optional[int] = None

    # API server (for on-demand runs)
    api_host: str = "127.0.0.1"
    api_port: int = 8084

    # Paths
    db_path: Path = field(default_factory=lambda: Path("/var/lib/mac-tracker/inventory.db"))
    credentials_path: Path = field(
        default_factory=lambda: Path("/var/lib/mac-tracker/host_creds.yaml")
    )

    # Loaded from credentials_path, keyed by host name
    credentials: dict[str, HostCredentials] = field(default_factory=dict)

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "TrackerConfig":
        """Load configuration from environment variables."""
        config = cls()

        config.mac_table_command = os.getenv("MAC_TABLE_COMMAND", config.mac_table_command)
        config.host_timeout_seconds = int(os.getenv("HOST_TIMEOUT", "45"))
        config.connect_timeout_seconds = int(os.getenv("CONNECT_TIMEOUT", "30"))
        config.max_concurrent_hosts = int(os.getenv("MAX_CONCURRENT_HOSTS", "4"))
        if run_timeout := os.getenv("RUN_TIMEOUT"):
            config.run_timeout_seconds = int(run_timeout)

        # API server
        config.api_host = os.getenv("API_HOST", "127.0.0.1")
        config.api_port = int(os.getenv("API_PORT", "8084"))

        # Paths
        if db_path := os.getenv("DB_PATH"):
            config.db_path = Path(db_path)
        if creds_path := os.getenv("CREDENTIALS_PATH"):
            config.credentials_path = Path(creds_path)

        # Logging
        config.log_level = os.getenv("LOG_LEVEL", "INFO")

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "TrackerConfig":
        """Load configuration from YAML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        config = cls()

        if "scan" in data:
            s = data["scan"]
            config.mac_table_command = s.get("command", config.mac_table_command)
            config.host_timeout_seconds = s.get("host_timeout", 45)
            config.connect_timeout_seconds = s.get("connect_timeout", 30)
            config.max_concurrent_hosts = s.get("max_concurrent_hosts", 4)
            config.run_timeout_seconds = s.get("run_timeout")

        if "api" in data:
            a = data["api"]
            config.api_host = a.get("host", "127.0.0.1")
            config.api_port = a.get("port", 8084)

        if "paths" in data:
            p = data["paths"]
            if "db" in p:
                config.db_path = Path(p["db"])
            if "credentials" in p:
                config.credentials_path = Path(p["credentials"])

        config.log_level = data.get("log_level", "INFO")

        return config

    def load_credentials(self) -> bool:
        """
        Load host credentials from the separate credentials file.

        Returns True when the file was read.
        """
        if not self.credentials_path.exists():
            logger.warning(f"Credentials file not found: {self.credentials_path}")
            return False

        try:
            with open(self.credentials_path) as f:
                creds = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load credentials: {e}")
            return False

        for host_name, entry in (creds.get("hosts") or {}).items():
            entry = entry or {}
            self.credentials[host_name] = HostCredentials(
                username=entry.get("username"),
                password=entry.get("password"),
                private_key_path=entry.get("private_key_path"),
            )

        logger.info(f"Loaded credentials for {len(self.credentials)} hosts")
        return True

    def validate(self) -> list[str]:
        """Validate configuration, returning list of errors."""
        errors = []

        if not self.mac_table_command.strip():
            errors.append("MAC table command is empty")

        if self.host_timeout_seconds <= 0:
            errors.append(f"Invalid host timeout: {self.host_timeout_seconds}")

        if self.max_concurrent_hosts < 1:
            errors.append(f"Invalid max concurrent hosts: {self.max_concurrent_hosts}")

        if self.run_timeout_seconds is not None and self.run_timeout_seconds <= 0:
            errors.append(f"Invalid run timeout: {self.run_timeout_seconds}")

        if not 0 < self.api_port < 65536:
            errors.append(f"Invalid API port: {self.api_port}")

        return errors


# Example host_creds.yaml:
"""
# /var/lib/mac-tracker/host_creds.yaml
# SEPARATE from the inventory database

hosts:
  core-sw-01:
    username: "netops"
    password: "switch-password-here"
  access-sw-07:
    username: "netops"
    private_key_path: "/var/lib/mac-tracker/keys/access-sw-07"
"""

# Example tracker_config.yaml:
"""
# /var/lib/mac-tracker/tracker_config.yaml

scan:
  command: "show mac address-table"
  host_timeout: 45
  connect_timeout: 30
  max_concurrent_hosts: 4
  run_timeout: 600

api:
  host: "127.0.0.1"
  port: 8084

paths:
  db: "/var/lib/mac-tracker/inventory.db"
  credentials: "/var/lib/mac-tracker/host_creds.yaml"

log_level: "INFO"
"""
