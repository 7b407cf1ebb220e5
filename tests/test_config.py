"""Tests for tracker configuration."""

import tempfile
from pathlib import Path

import pytest

from mac_tracker.config import TrackerConfig


@pytest.fixture
def tmp_dir():
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


class TestDefaults:
    """Tests for default values."""

    def test_defaults_are_valid(self):
        """Should validate cleanly out of the box."""
        config = TrackerConfig()
        assert config.validate() == []
        assert config.host_timeout_seconds == 45
        assert config.run_timeout_seconds is None
        assert config.mac_table_command == "show mac address-table"


class TestFromEnv:
    """Tests for environment loading."""

    def test_reads_environment(self, monkeypatch):
        """Should pick up overrides from the environment."""
        monkeypatch.setenv("HOST_TIMEOUT", "10")
        monkeypatch.setenv("RUN_TIMEOUT", "120")
        monkeypatch.setenv("MAX_CONCURRENT_HOSTS", "8")
        monkeypatch.setenv("DB_PATH", "/tmp/inv.db")
        monkeypatch.setenv("API_PORT", "9000")

        config = TrackerConfig.from_env()

        assert config.host_timeout_seconds == 10
        assert config.run_timeout_seconds == 120
        assert config.max_concurrent_hosts == 8
        assert config.db_path == Path("/tmp/inv.db")
        assert config.api_port == 9000

    def test_run_timeout_unset(self, monkeypatch):
        """Should leave runs unbounded without RUN_TIMEOUT."""
        monkeypatch.delenv("RUN_TIMEOUT", raising=False)
        assert TrackerConfig.from_env().run_timeout_seconds is None


class TestFromYaml:
    """Tests for YAML loading."""

    def test_missing_file_uses_defaults(self, tmp_dir):
        """Should fall back to defaults."""
        config = TrackerConfig.from_yaml(tmp_dir / "missing.yaml")
        assert config.api_port == 8084

    def test_reads_sections(self, tmp_dir):
        """Should read scan, api and paths sections."""
        path = tmp_dir / "tracker.yaml"
        path.write_text(
            "scan:\n"
            "  command: show mac-address-table\n"
            "  host_timeout: 20\n"
            "  run_timeout: 300\n"
            "api:\n"
            "  port: 9100\n"
            "paths:\n"
            "  db: /srv/inv.db\n"
            "log_level: DEBUG\n"
        )

        config = TrackerConfig.from_yaml(path)

        assert config.mac_table_command == "show mac-address-table"
        assert config.host_timeout_seconds == 20
        assert config.run_timeout_seconds == 300
        assert config.api_port == 9100
        assert config.db_path == Path("/srv/inv.db")
        assert config.log_level == "DEBUG"


class TestCredentials:
    """Tests for the separate credentials file."""

    def test_load(self, tmp_dir):
        """Should load per-host credentials."""
        path = tmp_dir / "creds.yaml"
        path.write_text(
            "hosts:\n"
            "  sw1:\n"
            "    username: netops\n"
            "    password: s3cret\n"
            "  sw2:\n"
            "    private_key_path: /keys/sw2\n"
        )
        config = TrackerConfig(credentials_path=path)

        assert config.load_credentials() is True
        assert config.credentials["sw1"].password == "s3cret"
        assert config.credentials["sw2"].private_key_path == "/keys/sw2"
        assert config.credentials["sw2"].password is None

    def test_missing_file(self, tmp_dir):
        """Should report a missing credentials file."""
        config = TrackerConfig(credentials_path=tmp_dir / "none.yaml")
        assert config.load_credentials() is False
        assert config.credentials == {}

    def test_invalid_yaml(self, tmp_dir):
        """Should report unreadable credentials."""
        path = tmp_dir / "creds.yaml"
        path.write_text("hosts: [unclosed\n")
        config = TrackerConfig(credentials_path=path)
        assert config.load_credentials() is False


class TestValidate:
    """Tests for validate."""

    def test_reports_errors(self):
        """Should list every invalid setting."""
        config = TrackerConfig(
            mac_table_command=" ",
            host_timeout_seconds=0,
            max_concurrent_hosts=0,
            run_timeout_seconds=-1,
            api_port=70000,
        )
        errors = config.validate()
        assert len(errors) == 5
