"""Tests for the daemon command."""
from unittest.mock import MagicMock, patch

import pytest

from claude_orch.cli.commands.daemon import daemon
from claude_orch.cli.main import cli
from claude_orch.core.constants import PID_FILE


@pytest.fixture
def config_file(tmp_path):
    return tmp_path / "orch.yaml"


@pytest.fixture
def pid_file(tmp_path):
    return tmp_path / ".orch" / PID_FILE


def invoke(cli_runner, config_file, *args):
    return cli_runner.invoke(cli, ['--config', str(config_file), 'daemon', *args])


class TestDaemonCommand:
    """Test suite for daemon commands."""

    def test_daemon_help(self, cli_runner):
        """Test daemon help command."""
        result = cli_runner.invoke(daemon, ['--help'])
        assert result.exit_code == 0
        assert 'Manage the orchestrator daemon' in result.output

    @patch('claude_orch.cli.commands.daemon.time.sleep')
    @patch('claude_orch.cli.commands.daemon.subprocess.Popen')
    @patch('claude_orch.cli.commands.daemon.DaemonClient')
    def test_daemon_start_success(self, mock_daemon_client, mock_popen, mock_sleep,
                                  cli_runner, config_file, pid_file):
        """Test successful daemon start."""
        mock_process = MagicMock()
        mock_process.pid = 12345
        mock_process.poll.return_value = None
        mock_popen.return_value = mock_process
        mock_daemon_client.return_value.list_tasks.return_value = {'tasks': []}

        result = invoke(cli_runner, config_file, 'start')

        assert result.exit_code == 0
        assert 'Daemon started successfully with PID 12345' in result.output
        assert pid_file.read_text() == '12345'
        argv = mock_popen.call_args[0][0]
        assert argv[-2:] == ['daemon', 'run']
        assert argv[argv.index('--config') + 1] == str(config_file.resolve())
        assert mock_popen.call_args.kwargs['start_new_session'] is True

    @patch('claude_orch.cli.commands.daemon.time.sleep')
    @patch('claude_orch.cli.commands.daemon.subprocess.Popen')
    @patch('claude_orch.cli.commands.daemon.DaemonClient')
    def test_daemon_start_process_exits(self, mock_daemon_client, mock_popen, mock_sleep,
                                        cli_runner, config_file, pid_file):
        mock_popen.return_value.poll.return_value = 1

        result = invoke(cli_runner, config_file, 'start')

        assert result.exit_code == 1
        assert 'Daemon failed to start' in result.output
        assert not pid_file.exists()

    @patch('claude_orch.cli.commands.daemon.subprocess.Popen')
    @patch('claude_orch.cli.commands.daemon.os.kill')
    def test_daemon_already_running(self, mock_kill, mock_popen, cli_runner, config_file,
                                    pid_file):
        pid_file.parent.mkdir(parents=True)
        pid_file.write_text('999')

        result = invoke(cli_runner, config_file, 'start')

        assert 'Daemon already running with PID 999' in result.output
        mock_kill.assert_called_once_with(999, 0)
        mock_popen.assert_not_called()

    @patch('claude_orch.cli.commands.daemon.os.kill')
    def test_daemon_stop(self, mock_kill, cli_runner, config_file, pid_file):
        pid_file.parent.mkdir(parents=True)
        pid_file.write_text('999')

        result = invoke(cli_runner, config_file, 'stop')

        assert 'Daemon (PID 999) stopped' in result.output
        assert not pid_file.exists()

    @patch('claude_orch.cli.commands.daemon.os.kill', side_effect=ProcessLookupError)
    def test_daemon_stop_not_running(self, mock_kill, cli_runner, config_file, pid_file):
        pid_file.parent.mkdir(parents=True)
        pid_file.write_text('999')

        result = invoke(cli_runner, config_file, 'stop')

        assert 'Daemon was not running' in result.output
        assert not pid_file.exists()

    def test_daemon_stop_no_pid_file(self, cli_runner, config_file):
        result = invoke(cli_runner, config_file, 'stop')

        assert 'No daemon PID file found' in result.output

    @patch('claude_orch.cli.commands.daemon.DaemonClient')
    @patch('claude_orch.cli.commands.daemon.os.kill')
    def test_daemon_status_running(self, mock_kill, mock_daemon_client, cli_runner,
                                   config_file, pid_file):
        pid_file.parent.mkdir(parents=True)
        pid_file.write_text('999')
        mock_daemon_client.return_value.list_tasks.return_value = {
            'tasks': [{'id': 1}, {'id': 2}]}

        result = invoke(cli_runner, config_file, 'status')

        assert 'Daemon running with PID 999' in result.output
        assert 'Running tasks: 2' in result.output
        mock_daemon_client.return_value.list_tasks.assert_called_once_with(status='running')

    def test_daemon_status_not_running(self, cli_runner, config_file):
        result = invoke(cli_runner, config_file, 'status')

        assert 'Daemon not running (no PID file)' in result.output

    @patch('claude_orch.core.task_daemon.main')
    def test_daemon_run_foreground(self, mock_main, cli_runner, config_file):
        result = invoke(cli_runner, config_file, 'run')

        assert result.exit_code == 0
        mock_main.assert_called_once_with(config_file)
