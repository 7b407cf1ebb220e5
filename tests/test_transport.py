"""Tests for the SSH table transport."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import asyncssh
import pytest

from mac_tracker._types import Host
from mac_tracker.config import HostCredentials
from mac_tracker.transport import SSHTableTransport, build_table_command


def mock_connect(run_result=None, run_side_effect=None, connect_side_effect=None):
    """Patch asyncssh.connect with an async context manager yielding a fake connection."""
    conn = MagicMock()
    conn.run = AsyncMock(return_value=run_result, side_effect=run_side_effect)

    connect = MagicMock()
    if connect_side_effect is not None:
        connect.side_effect = connect_side_effect
    else:
        connect.return_value.__aenter__ = AsyncMock(return_value=conn)
        connect.return_value.__aexit__ = AsyncMock(return_value=False)
    return patch("mac_tracker.transport.asyncssh.connect", connect), conn


def completed(stdout="", stderr="", exit_status=0):
    result = MagicMock()
    result.stdout = stdout
    result.stderr = stderr
    result.exit_status = exit_status
    return result


@pytest.fixture
def host() -> Host:
    return Host(name="sw1", address="10.0.0.1", port=2222, username="netops")


class TestBuildTableCommand:
    """Tests for command construction."""

    def test_without_vlan(self):
        """Should return the base command."""
        assert build_table_command("show mac address-table") == "show mac address-table"

    def test_with_vlan(self):
        """Should append the VLAN filter."""
        assert build_table_command("show mac address-table ", 20) == "show mac address-table vlan 20"


class TestQueryTable:
    """Tests for SSHTableTransport.query_table."""

    @pytest.mark.asyncio
    async def test_success(self, host):
        """Should return command output on exit status 0."""
        patcher, conn = mock_connect(run_result=completed(stdout="10 aa:bb:cc:dd:ee:ff dynamic Gi0/1\n"))
        transport = SSHTableTransport(credentials={"sw1": HostCredentials(password="secret")})

        with patcher as connect:
            result = await transport.query_table(host, vlan_id=10)

        assert result.success is True
        assert "aa:bb:cc:dd:ee:ff" in result.raw_output
        assert conn.run.call_args.args[0] == "show mac address-table vlan 10"
        kwargs = connect.call_args.kwargs
        assert kwargs["host"] == "10.0.0.1"
        assert kwargs["port"] == 2222
        assert kwargs["username"] == "netops"
        assert kwargs["password"] == "secret"
        assert "client_keys" not in kwargs

    @pytest.mark.asyncio
    async def test_answers_pager_with_spaces(self, host):
        """Should feed spaces on stdin for --More-- prompts."""
        patcher, conn = mock_connect(run_result=completed(stdout="x"))
        with patcher:
            await SSHTableTransport().query_table(host)

        assert conn.run.call_args.kwargs["input"].strip() == ""
        assert " " in conn.run.call_args.kwargs["input"]

    @pytest.mark.asyncio
    async def test_key_auth_and_credential_username(self):
        """Should use key paths and fall back to the credentials username."""
        host = Host(name="sw2", address="10.0.0.2", private_key_path="/keys/sw2")
        patcher, _ = mock_connect(run_result=completed(stdout="x"))
        transport = SSHTableTransport(credentials={"sw2": HostCredentials(username="ops")})

        with patcher as connect:
            await transport.query_table(host)

        kwargs = connect.call_args.kwargs
        assert kwargs["client_keys"] == ["/keys/sw2"]
        assert kwargs["username"] == "ops"
        assert "password" not in kwargs

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, host):
        """Should fail with the exit code and stderr."""
        patcher, _ = mock_connect(run_result=completed(stderr="% Invalid input", exit_status=1))
        with patcher:
            result = await SSHTableTransport().query_table(host)

        assert result.success is False
        assert "exit code 1" in result.error
        assert "% Invalid input" in result.error

    @pytest.mark.asyncio
    async def test_permission_denied(self, host):
        """Should report authentication failures."""
        patcher, _ = mock_connect(connect_side_effect=asyncssh.PermissionDenied("bad password"))
        with patcher:
            result = await SSHTableTransport().query_table(host)

        assert result.success is False
        assert "authentication failed" in result.error

    @pytest.mark.asyncio
    async def test_connection_refused(self, host):
        """Should report OS-level connection errors."""
        patcher, _ = mock_connect(connect_side_effect=ConnectionRefusedError("refused"))
        with patcher:
            result = await SSHTableTransport().query_table(host)

        assert result.success is False
        assert "Connection failed" in result.error

    @pytest.mark.asyncio
    async def test_command_timeout(self, host):
        """Should fail when the command runs past the timeout."""
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        patcher, _ = mock_connect(run_side_effect=slow)
        with patcher:
            result = await SSHTableTransport(command_timeout=0.05).query_table(host)

        assert result.success is False
        assert "timed out" in result.error


class TestTestConnection:
    """Tests for SSHTableTransport.test_connection."""

    @pytest.mark.asyncio
    async def test_success(self, host):
        """Should succeed when a session opens."""
        patcher, _ = mock_connect()
        with patcher:
            result = await SSHTableTransport().test_connection(host)
        assert result.success is True

    @pytest.mark.asyncio
    async def test_failure(self, host):
        """Should report the connection error."""
        patcher, _ = mock_connect(connect_side_effect=asyncssh.PermissionDenied("nope"))
        with patcher:
            result = await SSHTableTransport().test_connection(host)
        assert result.success is False
        assert "authentication failed" in result.error
