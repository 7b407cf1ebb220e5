"""
Switch access for MAC table queries.

TableTransport is the narrow contract the scan runner depends on: run the
MAC table command on one host and hand back raw text or an error. The
shipped implementation talks SSH through asyncssh.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import asyncssh

from ._types import Host
from .config import HostCredentials

logger = logging.getLogger(__name__)

# Spaces answer `--More--` prompts on switches without `terminal length 0`
_PAGER_INPUT = " " * 64


def build_table_command(base: str, vlan_id: Optional[int] = None) -> str:
    """Build the MAC table command, optionally filtered to one VLAN."""
    command = base.strip()
    if vlan_id is not None:
        command += f" vlan {vlan_id}"
    return command


@dataclass
class TableQueryResult:
    """Outcome of one host query."""
    success: bool
    raw_output: Optional[str] = None
    error: Optional[str] = None


class TableTransport(ABC):
    """Base class for host transports."""

    @abstractmethod
    async def query_table(self, host: Host, vlan_id: Optional[int] = None) -> TableQueryResult:
        """
        Run the MAC table command on a host.

        Never raises for connection or command problems; those come back as
        an unsuccessful result.
        """
        pass

    @abstractmethod
    async def test_connection(self, host: Host) -> TableQueryResult:
        """Check that the host accepts a session with its credentials."""
        pass


class SSHTableTransport(TableTransport):
    """
    MAC table queries over SSH.

    Passwords come from the credentials map keyed by host name; key paths
    may sit on the host record or in the credentials file.
    """

    def __init__(
        self,
        credentials: Optional[dict[str, HostCredentials]] = None,
        base_command: str = "show mac address-table",
        connect_timeout: float = 30.0,
        command_timeout: float = 60.0,
    ):
        self.credentials = credentials or {}
        self.base_command = base_command
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout

    def _connect_options(self, host: Host) -> dict:
        creds = self.credentials.get(host.name, HostCredentials())
        options = {
            "host": host.address,
            "port": host.port,
            "username": host.username or creds.username,
            "known_hosts": None,  # Switch host keys are not managed here
            "connect_timeout": self.connect_timeout,
        }

        key_path = host.private_key_path or creds.private_key_path
        if key_path:
            options["client_keys"] = [key_path]
        if creds.password:
            options["password"] = creds.password
        return options

    async def query_table(self, host: Host, vlan_id: Optional[int] = None) -> TableQueryResult:
        command = build_table_command(self.base_command, vlan_id)
        logger.debug(f"Running '{command}' on {host.name} ({host.address}:{host.port})")

        try:
            async with asyncssh.connect(**self._connect_options(host)) as conn:
                result = await asyncio.wait_for(
                    conn.run(command, check=False, input=_PAGER_INPUT),
                    timeout=self.command_timeout,
                )
        except asyncio.TimeoutError:
            logger.warning(f"Command timed out on {host.name} after {self.command_timeout}s")
            return TableQueryResult(
                success=False, error=f"Command timed out after {self.command_timeout}s"
            )
        except asyncssh.PermissionDenied as e:
            logger.error(f"SSH authentication failed to {host.name}: {e}")
            return TableQueryResult(success=False, error=f"SSH authentication failed: {e}")
        except asyncssh.Error as e:
            logger.error(f"SSH error on {host.name}: {e}")
            return TableQueryResult(success=False, error=f"SSH error: {e}")
        except OSError as e:
            logger.error(f"Cannot reach {host.name} at {host.address}:{host.port}: {e}")
            return TableQueryResult(success=False, error=f"Connection failed: {e}")

        if result.exit_status not in (0, None):
            stderr = str(result.stderr or "").strip()
            return TableQueryResult(
                success=False,
                raw_output=str(result.stdout or ""),
                error=f"Command failed with exit code {result.exit_status}: {stderr}",
            )

        return TableQueryResult(success=True, raw_output=str(result.stdout or ""))

    async def test_connection(self, host: Host) -> TableQueryResult:
        try:
            async with asyncssh.connect(**self._connect_options(host)):
                pass
        except asyncssh.PermissionDenied as e:
            return TableQueryResult(success=False, error=f"SSH authentication failed: {e}")
        except (asyncssh.Error, OSError) as e:
            return TableQueryResult(success=False, error=f"Connection failed: {e}")

        logger.info(f"SSH connection to {host.name} succeeded")
        return TableQueryResult(success=True, raw_output="")
