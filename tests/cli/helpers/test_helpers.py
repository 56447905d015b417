"""Unit tests for CLI helper functions."""

from unittest import mock

import click
import pytest

from claude_orch.cli.helpers import (
    check_response,
    format_status,
    format_task_table,
    format_timestamp,
    get_daemon_client,
    load_config,
)
from claude_orch.utils.config_manager import ConfigManager


def make_ctx(manager=None):
    return click.Context(click.Command('test'), obj=manager)


class TestLoadConfig:
    """Test load_config function."""

    def test_uses_context_manager(self, tmp_path):
        manager = ConfigManager(tmp_path / "orch.yaml", environ={})

        loaded_manager, config = load_config(make_ctx(manager))

        assert loaded_manager is manager
        assert config.data_dir == ".orch"

    def test_invalid_config_exits(self, tmp_path):
        config_file = tmp_path / "orch.yaml"
        config_file.write_text("- not a mapping\n")

        with pytest.raises(SystemExit) as exc_info:
            load_config(make_ctx(ConfigManager(config_file, environ={})))

        assert exc_info.value.code == 1

    def test_daemon_client_uses_data_dir(self, tmp_path):
        manager = ConfigManager(tmp_path / "orch.yaml", environ={})

        client = get_daemon_client(make_ctx(manager))

        assert client.socket_path == str(tmp_path.resolve() / ".orch" / "orch-daemon.sock")


class TestCheckResponse:
    def test_passes_through(self):
        assert check_response({"tasks": []}) == {"tasks": []}

    def test_error_exits(self):
        with mock.patch('click.echo') as mock_echo:
            with pytest.raises(SystemExit) as exc_info:
                check_response({"error": "Task 3 not found"})

        assert exc_info.value.code == 1
        mock_echo.assert_called_once_with("Error: Task 3 not found", err=True)


class TestFormatting:
    """Test table and value formatting."""

    def test_format_timestamp(self):
        assert format_timestamp("2024-01-02T03:04:05.123456") == "2024-01-02 03:04:05"
        assert format_timestamp(None) == "-"

    def test_format_status(self):
        assert click.unstyle(format_status("running")) == "RUNNING"

    def test_format_task_table(self):
        tasks = [
            {"id": 1, "type": "pr-review", "status": "completed", "repo": "octo/app",
             "title": "Add cache\nsecond line", "created_at": "2024-01-02T03:04:05"},
            {"id": 2, "type": "docs", "status": "pending", "repo": "octo/app",
             "title": "x" * 80, "created_at": None},
        ]

        table = click.unstyle(format_task_table(tasks))

        assert "ID" in table and "TITLE" in table
        assert "Add cache" in table
        assert "second line" not in table
        assert "x" * 47 + "..." in table
        assert "COMPLETED" in table
