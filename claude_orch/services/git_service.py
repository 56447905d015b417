"""Git service for abstracting Git operations."""

import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .exceptions import BranchNotFoundError, GitServiceError

logger = logging.getLogger(__name__)

DEFAULT_BRANCH_FALLBACK = "main"
CLONE_TIMEOUT = 120


@dataclass
class GitStatus:
    """Working tree status split by porcelain state."""
    staged: List[str] = field(default_factory=list)
    unstaged: List[str] = field(default_factory=list)
    untracked: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.staged or self.unstaged or self.untracked)

    @property
    def changed_files(self) -> List[str]:
        """All touched files, staged first, without duplicates."""
        seen = []
        for path in self.staged + self.unstaged + self.untracked:
            if path not in seen:
                seen.append(path)
        return seen


def parse_porcelain_status(output: str) -> GitStatus:
    """Parse `git status --porcelain -z` output.

    Entries are NUL-separated and paths are unquoted. Renames and copies
    carry their original path as an extra entry, which is skipped so only
    the new path is reported.

    Args:
        output: Raw porcelain output

    Returns:
        GitStatus with files bucketed as staged, unstaged or untracked
    """
    status = GitStatus()
    entries = iter(output.split('\0'))
    for entry in entries:
        if len(entry) < 4:
            continue
        index, worktree, path = entry[0], entry[1], entry[3:]
        if 'R' in (index, worktree) or 'C' in (index, worktree):
            next(entries, None)
        if index == '?' and worktree == '?':
            status.untracked.append(path)
        elif index not in (' ', '?'):
            status.staged.append(path)
        elif worktree != ' ':
            status.unstaged.append(path)
    return status


class GitService:
    """Service for Git operations with clean abstractions."""

    def __init__(self, repo_path: Optional[Path] = None):
        """Initialize Git service.

        Args:
            repo_path: Path to the git repository (defaults to current directory)
        """
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()
        if not self._is_git_repo():
            raise GitServiceError(f"{self.repo_path} is not a git repository")

    def _is_git_repo(self) -> bool:
        """Check if the current path is a git repository."""
        try:
            self._run_git_command(["rev-parse", "--git-dir"])
            return True
        except GitServiceError:
            return False

    def _run_git_command(
        self, args: list[str], check: bool = True, capture_output: bool = True
    ) -> subprocess.CompletedProcess:
        """Run a git command with proper error handling.

        Args:
            args: Git command arguments
            check: Check return code
            capture_output: Capture stdout and stderr

        Returns:
            Completed process result

        Raises:
            GitServiceError: If command fails
        """
        cmd = ["git"] + args
        try:
            result = subprocess.run(
                cmd,
                cwd=self.repo_path,
                check=check,
                capture_output=capture_output,
                text=True,
            )
            return result
        except subprocess.CalledProcessError as e:
            error_msg = e.stderr if e.stderr else str(e)
            raise GitServiceError(f"Git command failed: {error_msg}") from e
        except Exception as e:
            raise GitServiceError(f"Unexpected error running git command: {e}") from e

    @classmethod
    def clone(cls, url: str, target_dir: Path) -> "GitService":
        """Clone a repository and return a service bound to the clone.

        Raises:
            GitServiceError: If the clone fails or times out
        """
        target_dir = Path(target_dir)
        try:
            subprocess.run(
                ["git", "clone", url, str(target_dir)],
                check=True,
                capture_output=True,
                text=True,
                timeout=CLONE_TIMEOUT,
            )
        except subprocess.CalledProcessError as e:
            raise GitServiceError(f"Git clone failed: {e.stderr or e}") from e
        except subprocess.TimeoutExpired as e:
            raise GitServiceError(f"Git clone timed out after {CLONE_TIMEOUT}s") from e
        logger.info(f"Cloned {url} into {target_dir}")
        return cls(target_dir)

    def get_status(self) -> GitStatus:
        """Get the working tree status.

        Raises:
            GitServiceError: If git status fails
        """
        result = self._run_git_command(["status", "--porcelain", "-z"])
        return parse_porcelain_status(result.stdout)

    def get_current_branch(self) -> str:
        """Get the current branch name.

        Returns:
            Current branch name

        Raises:
            GitServiceError: If unable to get branch
        """
        result = self._run_git_command(["branch", "--show-current"])
        branch = result.stdout.strip()
        if not branch:
            raise GitServiceError("Unable to determine current branch")
        return branch

    def get_default_branch(self, remote: str = "origin") -> str:
        """Get the remote's HEAD branch, falling back to 'main'."""
        try:
            result = self._run_git_command(["remote", "show", remote])
        except GitServiceError as e:
            logger.warning(f"Could not read default branch from {remote}: {e}")
            return DEFAULT_BRANCH_FALLBACK
        match = re.search(r"HEAD branch: (\S+)", result.stdout)
        return match.group(1) if match else DEFAULT_BRANCH_FALLBACK

    def fetch(self, remote: str = "origin") -> None:
        """Fetch from a remote.

        Raises:
            GitServiceError: If fetch fails
        """
        self._run_git_command(["fetch", remote])

    def create_branch_from(self, branch_name: str, base_branch: str, remote: str = "origin") -> None:
        """Create and check out a branch from the latest remote base branch.

        Uncommitted changes in the working tree are carried onto the new branch.

        Raises:
            GitServiceError: If fetch or checkout fails
        """
        self.fetch(remote)
        self._run_git_command(["checkout", "-b", branch_name, f"{remote}/{base_branch}"])
        logger.info(f"Created branch {branch_name} from {remote}/{base_branch}")

    def checkout_branch(self, branch_name: str) -> None:
        """Check out an existing local branch.

        Raises:
            BranchNotFoundError: If the branch doesn't exist locally
            GitServiceError: If checkout fails
        """
        if not self.branch_exists_local(branch_name):
            raise BranchNotFoundError(f"Branch '{branch_name}' not found locally")

        self._run_git_command(["checkout", branch_name])
        logger.info(f"Checked out branch: {branch_name}")

    def checkout_remote_branch(self, branch_name: str, remote: str = "origin") -> None:
        """Fetch, check out and fast-forward an existing remote branch.

        A missing local branch is created tracking the remote one.

        Raises:
            GitServiceError: If any step fails
        """
        self.fetch(remote)
        if self.branch_exists_local(branch_name):
            self._run_git_command(["checkout", branch_name])
        else:
            self._run_git_command(["checkout", "-b", branch_name, "--track", f"{remote}/{branch_name}"])
        self._run_git_command(["pull", remote, branch_name])
        logger.info(f"Checked out remote branch: {branch_name}")

    def stage_and_commit(self, message: str) -> None:
        """Stage all changes and commit.

        Args:
            message: Commit message

        Raises:
            GitServiceError: If add or commit fails
        """
        self._run_git_command(["add", "-A"])
        self._run_git_command(["commit", "-m", message])
        logger.info(f"Committed changes: {message.splitlines()[0] if message else ''}")

    def push_branch(self, branch_name: str, set_upstream: bool = True, remote: str = "origin") -> None:
        """Push a branch to remote.

        Args:
            branch_name: Branch name
            set_upstream: Set upstream tracking

        Raises:
            GitServiceError: If push fails
        """
        args = ["push"]
        if set_upstream:
            args.append("-u")
        args.extend([remote, branch_name])

        self._run_git_command(args)
        logger.info(f"Pushed branch: {branch_name}")

    def discard_all_changes(self) -> None:
        """Throw away tracked modifications and untracked files.

        Raises:
            GitServiceError: If reset or clean fails
        """
        self._run_git_command(["reset", "--hard", "HEAD"])
        self._run_git_command(["clean", "-fd"])
        logger.info("Discarded working tree changes")

    def branch_exists_local(self, branch_name: str) -> bool:
        """Check if a branch exists locally.

        Args:
            branch_name: Name of the branch

        Returns:
            True if branch exists locally
        """
        try:
            result = self._run_git_command(
                ["branch", "--list", branch_name], check=False
            )
            return bool(result.stdout.strip())
        except GitServiceError:
            return False

    def get_remote_url(self, remote: str = "origin") -> str:
        """Get the URL of a remote.

        Raises:
            GitServiceError: If remote not found
        """
        result = self._run_git_command(["remote", "get-url", remote])
        return result.stdout.strip()
