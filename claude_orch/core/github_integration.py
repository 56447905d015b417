"""GitHub integration through the gh CLI."""

import json
import logging
import os
import subprocess
from typing import Any, Dict, List, Optional

from ..services.exceptions import GitHubServiceError

logger = logging.getLogger(__name__)

PR_FIELDS = "number,title,body,headRefName,baseRefName,url,author,updatedAt"
ISSUE_FIELDS = "number,title,body,url,author,updatedAt"


class GitHubIntegration:
    """Handle GitHub operations for orchestrated tasks.

    Every call names its repository explicitly with ``--repo`` (or an API
    path), so nothing depends on the process working directory.
    """

    def __init__(self, token: str = "", gh_command: str = "gh"):
        self.token = token
        self.gh_command = gh_command

    def _env(self) -> Dict[str, str]:
        env = os.environ.copy()
        if self.token:
            env["GH_TOKEN"] = self.token
        return env

    def _run_gh(self, args: List[str]) -> str:
        """Run a gh command and return its stdout.

        Raises:
            GitHubServiceError: If gh is missing or the command fails
        """
        try:
            result = subprocess.run(
                [self.gh_command] + args,
                env=self._env(),
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise GitHubServiceError(
                f"gh {' '.join(args[:2])} failed: {(e.stderr or '').strip()}"
            ) from e
        except FileNotFoundError as e:
            raise GitHubServiceError(f"{self.gh_command} CLI not found") from e
        return result.stdout

    def _run_gh_json(self, args: List[str]) -> Any:
        output = self._run_gh(args)
        try:
            return json.loads(output) if output.strip() else []
        except json.JSONDecodeError as e:
            raise GitHubServiceError(f"Unexpected gh output: {e}") from e

    def is_available(self) -> bool:
        """Check that gh is installed and authenticated."""
        try:
            self._run_gh(["auth", "status"])
            return True
        except GitHubServiceError:
            return False

    def get_authenticated_user(self) -> str:
        return self._run_gh(["api", "user", "--jq", ".login"]).strip()

    def create_pull_request(self, repo: str, head: str, base: str, title: str,
                            body: str) -> str:
        """Create a pull request and return its URL."""
        output = self._run_gh([
            "pr", "create",
            "--repo", repo,
            "--head", head,
            "--base", base,
            "--title", title,
            "--body", body,
        ])
        # gh prints the URL as its last line
        return output.strip().splitlines()[-1] if output.strip() else ""

    def post_pr_comment(self, repo: str, pr_number: int, body: str) -> None:
        self._run_gh(["pr", "comment", str(pr_number), "--repo", repo, "--body", body])

    def post_issue_comment(self, repo: str, issue_number: int, body: str) -> None:
        self._run_gh(["issue", "comment", str(issue_number), "--repo", repo, "--body", body])

    def reply_to_review_comment(self, repo: str, pr_number: int, comment_id: int,
                                body: str) -> None:
        """Reply in the thread of an inline review comment."""
        self._run_gh([
            "api", "--method", "POST",
            f"repos/{repo}/pulls/{pr_number}/comments/{comment_id}/replies",
            "-f", f"body={body}",
        ])

    def list_open_prs(self, repo: str, limit: int = 10,
                      author: Optional[str] = None) -> List[Dict[str, Any]]:
        args = ["pr", "list", "--repo", repo, "--state", "open",
                "--limit", str(limit), "--json", PR_FIELDS]
        if author:
            args.extend(["--author", author])
        return self._run_gh_json(args)

    def list_open_issues(self, repo: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Open issues; gh already excludes pull requests here."""
        return self._run_gh_json([
            "issue", "list", "--repo", repo, "--state", "open",
            "--limit", str(limit), "--json", ISSUE_FIELDS,
        ])

    def list_review_comments(self, repo: str, pr_number: int) -> List[Dict[str, Any]]:
        """Inline review comments on a pull request, oldest first."""
        return self._run_gh_json([
            "api", f"repos/{repo}/pulls/{pr_number}/comments?per_page=100",
        ])

    @staticmethod
    def get_pr_number_from_url(pr_url: str) -> Optional[int]:
        """Extract PR number from URL."""
        # URL format: https://github.com/owner/repo/pull/123
        parts = pr_url.strip().rstrip('/').split('/')
        if len(parts) >= 2 and parts[-2] == 'pull' and parts[-1].isdigit():
            return int(parts[-1])
        return None
