"""Azure DevOps REST client."""

import base64
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..services.exceptions import AdoServiceError
from .constants import ADO_API_VERSION, HTTP_TIMEOUT

logger = logging.getLogger(__name__)

ADO_BASE_URL = "https://dev.azure.com"
WORK_ITEM_COMMENTS_API_VERSION = "7.1-preview.4"
THREAD_STATUS_ACTIVE = 1
COMMENT_TYPE_TEXT = 1


def strip_ref(ref: Optional[str]) -> Optional[str]:
    """refs/heads/main -> main"""
    if ref and ref.startswith("refs/heads/"):
        return ref[len("refs/heads/"):]
    return ref


class AdoClient:
    """Minimal Azure DevOps client authenticated with a personal access token."""

    def __init__(self, organization: str, pat: str, timeout: float = HTTP_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.organization = organization
        self.pat = pat
        self.timeout = timeout
        self._transport = transport
        token = base64.b64encode(f":{pat}".encode()).decode()
        self.headers = {
            "Authorization": f"Basic {token}",
            "Content-Type": "application/json",
        }

    @property
    def is_configured(self) -> bool:
        return bool(self.organization and self.pat)

    def _url(self, path: str, project: Optional[str] = None) -> str:
        prefix = f"{ADO_BASE_URL}/{self.organization}"
        if project:
            prefix = f"{prefix}/{project}"
        return f"{prefix}/_apis/{path}"

    async def _request(self, method: str, url: str, api_version: str = ADO_API_VERSION,
                       json: Optional[Dict[str, Any]] = None,
                       params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises:
            AdoServiceError: If the client is unconfigured, the request fails or
                the response is not a 2xx
        """
        if not self.is_configured:
            raise AdoServiceError("Azure DevOps organization or PAT not configured")
        query = {"api-version": api_version}
        query.update(params or {})
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.request(method, url, headers=self.headers,
                                                params=query, json=json)
            except httpx.HTTPError as e:
                raise AdoServiceError(f"ADO request to {url} failed: {e}") from e
        if response.status_code >= 400:
            raise AdoServiceError(
                f"ADO request to {url} returned {response.status_code}: {response.text[:500]}"
            )
        return response.json() if response.content else {}

    async def create_pull_request(self, project: str, repo_name: str, source_branch: str,
                                  target_branch: str, title: str, description: str) -> Optional[str]:
        """Create a pull request and return its web URL."""
        data = await self._request(
            "POST",
            self._url(f"git/repositories/{repo_name}/pullrequests", project),
            json={
                "sourceRefName": f"refs/heads/{source_branch}",
                "targetRefName": f"refs/heads/{target_branch}",
                "title": title,
                "description": description,
            },
        )
        return data.get("_links", {}).get("web", {}).get("href")

    async def post_pr_comment(self, project: str, repo_name: str, pr_id: int, body: str) -> None:
        """Start a new active comment thread on a pull request."""
        await self._request(
            "POST",
            self._url(f"git/repositories/{repo_name}/pullRequests/{pr_id}/threads", project),
            json={
                "comments": [{"content": body, "commentType": COMMENT_TYPE_TEXT}],
                "status": THREAD_STATUS_ACTIVE,
            },
        )

    async def reply_to_thread(self, project: str, repo_name: str, pr_id: int,
                              thread_id: int, body: str) -> None:
        """Reply to the first comment of an existing pull request thread."""
        await self._request(
            "POST",
            self._url(
                f"git/repositories/{repo_name}/pullRequests/{pr_id}/threads/{thread_id}/comments",
                project,
            ),
            json={"content": body, "parentCommentId": 1, "commentType": COMMENT_TYPE_TEXT},
        )

    async def post_work_item_comment(self, work_item_id: int, body: str) -> None:
        await self._request(
            "POST",
            self._url(f"wit/workItems/{work_item_id}/comments"),
            api_version=WORK_ITEM_COMMENTS_API_VERSION,
            json={"text": body},
        )

    async def list_active_prs(self, project: str, repo_name: str) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET",
            self._url(f"git/repositories/{repo_name}/pullrequests", project),
            params={"searchCriteria.status": "active"},
        )
        return data.get("value", [])
