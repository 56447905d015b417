"""Daemon command for Claude Orch."""

import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import click

from ...core.constants import DAEMON_ERROR_LOG_FILE, DAEMON_LOG_FILE, PID_FILE
from ...core.daemon_client import DaemonClient
from ..helpers import get_data_dir, load_config

STARTUP_CHECKS = 10
STARTUP_CHECK_INTERVAL = 0.5  # seconds


def _read_pid(pid_file: Path):
    try:
        return int(pid_file.read_text().strip())
    except (OSError, ValueError):
        return None


@click.group()
def daemon():
    """Manage the orchestrator daemon"""
    pass


@daemon.command()
@click.pass_context
def run(ctx):
    """Run the daemon in the foreground"""
    from ...core.task_daemon import main

    manager, _ = load_config(ctx)
    main(manager.config_file)


@daemon.command()
@click.pass_context
def start(ctx):
    """Start the daemon in the background"""
    manager, config = load_config(ctx)
    data_dir = manager.data_dir(config)
    data_dir.mkdir(parents=True, exist_ok=True)
    pid_file = data_dir / PID_FILE

    pid = _read_pid(pid_file) if pid_file.exists() else None
    if pid:
        try:
            # Check if process is running
            os.kill(pid, 0)
            click.echo(f"Daemon already running with PID {pid}")
            return
        except ProcessLookupError:
            pid_file.unlink()

    click.echo("Starting orchestrator daemon...")

    stdout_log = data_dir / DAEMON_LOG_FILE
    stderr_log = data_dir / DAEMON_ERROR_LOG_FILE

    with open(stdout_log, 'a') as out_file, open(stderr_log, 'a') as err_file:
        process = subprocess.Popen(
            ['nohup', sys.executable, '-m', 'claude_orch.cli.main',
             '--config', str(manager.config_file.resolve()), 'daemon', 'run'],
            stdout=out_file,
            stderr=err_file,
            stdin=subprocess.DEVNULL,
            start_new_session=True,
        )

    pid_file.write_text(str(process.pid))

    client = DaemonClient(data_dir)
    for i in range(STARTUP_CHECKS):
        time.sleep(STARTUP_CHECK_INTERVAL)
        if process.poll() is not None:
            click.echo(f"✗ Daemon failed to start. Check logs at {stderr_log}", err=True)
            if pid_file.exists():
                pid_file.unlink()
            sys.exit(1)
        if "error" not in client.list_tasks(limit=1):
            click.echo(f"✓ Daemon started successfully with PID {process.pid}")
            click.echo("\nLogs are being written to:")
            click.echo(f"  - Output: {stdout_log}")
            click.echo(f"  - Errors: {stderr_log}")
            click.echo("\nUseful commands:")
            click.echo("  orch daemon status    # Check daemon status")
            click.echo("  orch daemon stop      # Stop the daemon")
            click.echo(f"  tail -f {stdout_log}  # Watch logs")
            return

    click.echo(f"⚠ Daemon process started (PID {process.pid}) but not accepting connections yet")
    click.echo(f"Check logs at {stderr_log}")


@daemon.command()
@click.pass_context
def stop(ctx):
    """Stop the daemon"""
    pid_file = get_data_dir(ctx) / PID_FILE

    if not pid_file.exists():
        click.echo("No daemon PID file found")
        return

    pid = _read_pid(pid_file)
    if pid is None:
        pid_file.unlink()
        click.echo("Removed unreadable PID file")
        return

    try:
        os.kill(pid, signal.SIGTERM)
        click.echo(f"Daemon (PID {pid}) stopped")
    except ProcessLookupError:
        click.echo("Daemon was not running")
    except PermissionError as e:
        click.echo(f"Error stopping daemon: {e}", err=True)
        sys.exit(1)
    pid_file.unlink()


@daemon.command()
@click.pass_context
def status(ctx):
    """Check daemon status"""
    data_dir = get_data_dir(ctx)
    pid_file = data_dir / PID_FILE

    if not pid_file.exists():
        click.echo("Daemon not running (no PID file)")
        return

    pid = _read_pid(pid_file)
    try:
        if pid is None:
            raise ProcessLookupError
        os.kill(pid, 0)
    except ProcessLookupError:
        pid_file.unlink()
        click.echo("Daemon not running (process not found)")
        return

    click.echo(f"Daemon running with PID {pid}")

    client = DaemonClient(data_dir)
    response = client.list_tasks(status='running')
    if "error" in response:
        click.echo(f"Daemon communication error: {response['error']}")
    else:
        click.echo(f"Running tasks: {len(response.get('tasks', []))}")

    click.echo("\nLogs:")
    click.echo(f"  tail -f {data_dir / DAEMON_LOG_FILE}")
    click.echo(f"  tail -f {data_dir / DAEMON_ERROR_LOG_FILE}")
