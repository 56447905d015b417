"""Discovery of local clones and resolution of logical repo names to paths."""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..models.config import ReposConfig
from ..services.exceptions import GitServiceError
from ..services.git_service import GitService

logger = logging.getLogger(__name__)

SOURCE_GITHUB = "github"
SOURCE_ADO = "ado"
SOURCE_UNKNOWN = "unknown"

REMOTE_PATTERNS: List[Tuple[str, "re.Pattern[str]"]] = [
    # git@github.com:owner/repo.git
    (SOURCE_GITHUB, re.compile(r"git@github\.com:(?P<name>.+?)(?:\.git)?$")),
    # https://github.com/owner/repo.git
    (SOURCE_GITHUB, re.compile(r"https://github\.com/(?P<name>.+?)(?:\.git)?$")),
    # git@ssh.dev.azure.com:v3/org/project/repo
    (SOURCE_ADO, re.compile(r"git@ssh\.dev\.azure\.com:v3/(?P<org>[^/]+)/(?P<project>[^/]+)/(?P<repo>.+?)$")),
    # https://[user@]dev.azure.com/org/project/_git/repo
    (SOURCE_ADO, re.compile(
        r"https://(?:[^@]+@)?dev\.azure\.com/(?P<org>[^/]+)/(?P<project>[^/]+)/_git/(?P<repo>.+?)(?:\.git)?$"
    )),
    # https://org.visualstudio.com/project/_git/repo
    (SOURCE_ADO, re.compile(
        r"https://(?P<org>[^.]+)\.visualstudio\.com/(?P<project>[^/]+)/_git/(?P<repo>.+?)(?:\.git)?$"
    )),
]


@dataclass
class RepoInfo:
    """A git working tree found under the base directory."""
    local_path: Path
    local_name: str
    remote: Optional[str]  # "owner/name" or "org/project/name"
    source: str


def parse_remote_url(remote: str) -> Tuple[str, str]:
    """Map a remote URL to (full_name, source).

    Unrecognised remotes come back unchanged with source "unknown".
    """
    remote = remote.strip()
    for source, pattern in REMOTE_PATTERNS:
        match = pattern.match(remote)
        if not match:
            continue
        if source == SOURCE_GITHUB:
            return match.group("name"), source
        return f"{match.group('org')}/{match.group('project')}/{match.group('repo')}", source
    return remote, SOURCE_UNKNOWN


def scan_repos(base_dir: Path) -> List[RepoInfo]:
    """List git clones directly under base_dir with their parsed origin remote."""
    base_dir = Path(base_dir).resolve()
    if not base_dir.is_dir():
        logger.warning(f"Base directory not found: {base_dir}")
        return []

    repos = []
    for entry in sorted(base_dir.iterdir()):
        if not entry.is_dir() or not (entry / ".git").exists():
            continue
        try:
            url = GitService(entry).get_remote_url()
            remote, source = parse_remote_url(url)
        except GitServiceError:
            remote, source = None, SOURCE_UNKNOWN
        repos.append(RepoInfo(entry, entry.name, remote, source))
    return repos


def build_repo_mapping(repos: List[RepoInfo]) -> Dict[str, str]:
    return {
        repo.remote: repo.local_name
        for repo in repos
        if repo.remote and repo.source != SOURCE_UNKNOWN
    }


class RepoResolver:
    """Resolves logical repository names to local working trees."""

    def __init__(self, config: ReposConfig):
        self.config = config

    @property
    def base_dir(self) -> Path:
        return Path(self.config.base_dir).expanduser().resolve()

    def scan(self) -> List[RepoInfo]:
        return scan_repos(self.base_dir)

    def effective_mapping(self) -> Dict[str, str]:
        """Explicit mapping, plus scanned clones it does not already name."""
        mapping = dict(self.config.mapping)
        if self.config.auto_scan:
            for remote, local in build_repo_mapping(self.scan()).items():
                mapping.setdefault(remote, local)
        return mapping

    def resolve_repo_path(self, repo: str, mapping: Optional[Dict[str, str]] = None) -> Path:
        """Local path for a repo; falls back to <base_dir>/<repo name>."""
        mapping = self.effective_mapping() if mapping is None else mapping
        parts = repo.split("/")
        for key in (repo, "/".join(parts[-2:]), parts[-1]):
            if key in mapping:
                return self.base_dir / mapping[key]
        return self.base_dir / parts[-1]

    def find_project_repo(self, project: str,
                          mapping: Optional[Dict[str, str]] = None) -> Optional[str]:
        """First mapped ADO repo that belongs to ``project``."""
        mapping = self.effective_mapping() if mapping is None else mapping
        for full_name in mapping:
            parts = full_name.split("/")
            if len(parts) >= 2 and parts[-2] == project:
                return full_name
        return None
