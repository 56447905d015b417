from claude_orch.cli.main import cli


class TestMainCLI:
    """Smoke tests for main CLI functionality."""

    def test_cli_help(self, cli_runner):
        """Test that CLI shows help."""
        result = cli_runner.invoke(cli, ['--help'])
        assert result.exit_code == 0
        assert 'Claude Orch' in result.output
        assert 'Commands:' in result.output

    def test_cli_no_args(self, cli_runner):
        """Test CLI with no arguments shows help."""
        result = cli_runner.invoke(cli, [])
        assert result.exit_code in (0, 2)  # Click 8.2 exits 2 for a missing command
        assert 'Usage:' in result.output

    def test_cli_invalid_command(self, cli_runner):
        """Test CLI with invalid command."""
        result = cli_runner.invoke(cli, ['invalid-command'])
        assert result.exit_code != 0
        assert 'No such command' in result.output

    def test_cli_command_groups(self, cli_runner):
        """Test that main command groups are available."""
        result = cli_runner.invoke(cli, ['--help'])
        for command in ('daemon', 'task', 'processes', 'repos', 'config'):
            assert command in result.output

    def test_config_option_sets_manager(self, cli_runner, tmp_path):
        config_file = tmp_path / "custom.yaml"
        result = cli_runner.invoke(cli, ['--config', str(config_file), 'config', 'init'])
        assert result.exit_code == 0
        assert config_file.exists()
