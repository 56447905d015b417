"""Launching user-visible terminal windows."""

import logging
import shlex
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from .constants import TERMINAL_LAUNCH_TIMEOUT

logger = logging.getLogger(__name__)

# Fallback order when the preferred terminal is "auto"
AUTO_TERMINALS = ("gnome-terminal", "xterm", "tmux")


def write_prompt_file(task_id: int, prompt: str) -> Path:
    """Write a prompt to a temporary file the terminal session can read."""
    with tempfile.NamedTemporaryFile(
        mode="w", prefix=f"orch-task-{task_id}-", suffix=".md", delete=False, encoding="utf-8"
    ) as f:
        f.write(prompt)
    return Path(f.name)


def tmux_session_name(task_id: int) -> str:
    return f"orch-term-{task_id}"


def build_terminal_command(terminal: str, cwd: str, title: str, session: str,
                           shell_command: Optional[str] = None) -> List[str]:
    """Build the argv that opens ``terminal`` in ``cwd``.

    When ``shell_command`` is given the window runs it and then drops into an
    interactive shell; otherwise it just opens a shell.
    """
    script = f"{shell_command}; exec bash" if shell_command else "exec bash"
    if terminal == "gnome-terminal":
        return ["gnome-terminal", f"--title={title}", f"--working-directory={cwd}",
                "--", "bash", "-c", script]
    if terminal == "xterm":
        return ["xterm", "-T", title, "-e", "bash", "-c",
                f"cd {shlex.quote(cwd)} && {script}"]
    if terminal == "tmux":
        return ["tmux", "new-session", "-d", "-s", session, "-c", cwd, "bash", "-c", script]
    raise ValueError(f"Unsupported terminal: {terminal}")


class TerminalLauncher:
    """Opens terminal windows for interactive assistant sessions and shells."""

    def __init__(self, preferred: str = "auto"):
        self.preferred = preferred

    def _candidates(self) -> List[str]:
        if self.preferred == "auto":
            return list(AUTO_TERMINALS)
        return [self.preferred]

    def _launch(self, terminal: str, argv: List[str], cwd: str) -> bool:
        if not shutil.which(terminal):
            return False
        try:
            if terminal == "tmux":
                # tmux detaches immediately, so its exit code is meaningful
                result = subprocess.run(argv, cwd=cwd, capture_output=True, text=True,
                                        timeout=TERMINAL_LAUNCH_TIMEOUT)
                if result.returncode != 0:
                    logger.warning(f"tmux failed: {result.stderr.strip()}")
                    return False
                return True
            subprocess.Popen(argv, cwd=cwd, stdout=subprocess.DEVNULL,
                             stderr=subprocess.DEVNULL, start_new_session=True)
            return True
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Failed to launch {terminal}: {e}")
            return False

    def open(self, task_id: int, cwd: str, title: str,
             shell_command: Optional[str] = None) -> Optional[str]:
        """Open a terminal window.

        Returns:
            The terminal that was opened, or None if none could be launched
        """
        session = tmux_session_name(task_id)
        for terminal in self._candidates():
            argv = build_terminal_command(terminal, cwd, title, session, shell_command)
            if self._launch(terminal, argv, cwd):
                logger.info(f"[Task #{task_id}] Opened {terminal} in {cwd}")
                return terminal
        logger.error(f"[Task #{task_id}] No terminal could be opened "
                     f"(tried {', '.join(self._candidates())})")
        return None

    def open_shell(self, task_id: int, cwd: str, repo: str) -> Optional[str]:
        """Open a plain shell in a task's working tree."""
        return self.open(task_id, cwd, f"Task #{task_id}: {repo}")

    def open_assistant(self, task_id: int, cwd: str, repo: str,
                       command: List[str], prompt: str) -> Optional[str]:
        """Run an interactive assistant session seeded with a prompt."""
        prompt_file = write_prompt_file(task_id, prompt)
        shell_command = f'{shlex.join(command)} "$(cat {shlex.quote(str(prompt_file))})"'
        return self.open(task_id, cwd, f"Task #{task_id}: {repo}", shell_command)
