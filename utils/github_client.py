# utils/github_client.py

import base64
import os
import httpx
from dotenv import load_dotenv
from typing import Any, Dict, List, Optional

load_dotenv()

GITHUB_API_BASE = "https://api.github.com"
PER_PAGE = 100


def _raise_for_status(resp: httpx.Response):
    # re-raise with the response body attached, GitHub explains itself there
    try:
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise httpx.HTTPStatusError(
            f"GitHub returned {resp.status_code}: {resp.text}",
            request=e.request,
            response=e.response,
        )


class GitHubClient:
    """
    Thin async wrapper over the GitHub REST endpoints the review pipeline needs.
    One instance is bound to one repository.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: Optional[str] = None,
        api_base: str = GITHUB_API_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.owner = owner
        self.repo = repo
        self.api_base = api_base
        self.transport = transport

        token = token if token is not None else os.getenv("GITHUB_TOKEN")
        self.headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "PR-Review-Agent",
        }
        if token:
            self.headers["Authorization"] = f"token {token}"

    @property
    def repo_url(self) -> str:
        return f"{self.api_base}/repos/{self.owner}/{self.repo}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=30.0, headers=self.headers, transport=self.transport)

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        async with self._client() as client:
            resp = await client.get(url, params=params)
            _raise_for_status(resp)
            return resp.json()

    async def _get_paginated(self, url: str) -> List[dict]:
        items: List[dict] = []
        page = 1
        async with self._client() as client:
            while True:
                resp = await client.get(url, params={"per_page": PER_PAGE, "page": page})
                _raise_for_status(resp)
                batch = resp.json()
                items.extend(batch)
                if len(batch) < PER_PAGE:
                    return items
                page += 1

    async def _send(self, method: str, url: str, payload: dict) -> dict:
        async with self._client() as client:
            resp = await client.request(method, url, json=payload)
            _raise_for_status(resp)
            return resp.json()

    # -----------------------------------------------------------
    # Pull request metadata and commits
    # -----------------------------------------------------------
    async def get_pull_request(self, pr_number: int) -> dict:
        return await self._get(f"{self.repo_url}/pulls/{pr_number}")

    async def list_pull_commits(self, pr_number: int) -> List[dict]:
        """All commits of the PR branch, oldest first."""
        return await self._get_paginated(f"{self.repo_url}/pulls/{pr_number}/commits")

    async def update_pull_request(self, pr_number: int, body: str) -> dict:
        return await self._send("PATCH", f"{self.repo_url}/pulls/{pr_number}", {"body": body})

    # -----------------------------------------------------------
    # Diffs and file contents
    # -----------------------------------------------------------
    async def compare_commits(self, base: str, head: str) -> dict:
        """
        Returns the compare payload: `files` (filename, status, patch, ...)
        and `commits` between base and head.
        """
        return await self._get(f"{self.repo_url}/compare/{base}...{head}")

    async def get_file_content(self, path: str, ref: str) -> Optional[str]:
        """
        File text at `ref`, or None when the file does not exist there
        (a new file) or is not a regular file.
        """
        async with self._client() as client:
            resp = await client.get(f"{self.repo_url}/contents/{path}", params={"ref": ref})
            if resp.status_code == 404:
                return None
            _raise_for_status(resp)
            data = resp.json()

        if isinstance(data, list) or data.get("type") != "file" or data.get("content") is None:
            return None
        return base64.b64decode(data["content"]).decode("utf-8", errors="replace")

    # -----------------------------------------------------------
    # Conversation comments (summary comment lives here)
    # -----------------------------------------------------------
    async def list_issue_comments(self, pr_number: int) -> List[dict]:
        return await self._get_paginated(f"{self.repo_url}/issues/{pr_number}/comments")

    async def create_issue_comment(self, pr_number: int, body: str) -> dict:
        return await self._send("POST", f"{self.repo_url}/issues/{pr_number}/comments", {"body": body})

    async def update_issue_comment(self, comment_id: int, body: str) -> dict:
        return await self._send("PATCH", f"{self.repo_url}/issues/comments/{comment_id}", {"body": body})

    # -----------------------------------------------------------
    # Inline review comments
    # -----------------------------------------------------------
    async def list_review_comments(self, pr_number: int) -> List[dict]:
        return await self._get_paginated(f"{self.repo_url}/pulls/{pr_number}/comments")

    async def create_review(self, pr_number: int, commit_id: str, comments: List[dict], body: str = "") -> dict:
        payload = {
            "commit_id": commit_id,
            "event": "COMMENT",
            "body": body,
            "comments": comments,
        }
        return await self._send("POST", f"{self.repo_url}/pulls/{pr_number}/reviews", payload)

    async def create_review_comment(self, pr_number: int, commit_id: str, comment: dict) -> dict:
        payload = dict(comment, commit_id=commit_id)
        return await self._send("POST", f"{self.repo_url}/pulls/{pr_number}/comments", payload)
