"""Shared fakes for the model and GitHub collaborators."""
import asyncio
import copy
from typing import Callable, Dict, List, Optional, Tuple, Union

import pytest


def char_count(text: str) -> int:
    return len(text)


class FakeBot:
    """Stands in for GeminiBot. `responder` is a fixed string, a list consumed in order, or a callable."""

    def __init__(self, responder: Union[str, List[str], Callable[[str], str]] = "", delay: float = 0.0):
        self.responder = responder
        self.delay = delay
        self.prompts: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def chat(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        self.prompts.append(prompt)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if callable(self.responder):
                result = self.responder(prompt)
                if asyncio.iscoroutine(result):
                    result = await result
                return result
            if isinstance(self.responder, list):
                return self.responder.pop(0) if self.responder else ""
            return self.responder
        finally:
            self.in_flight -= 1


class FakeGitHub:
    """In-memory replacement for GitHubClient."""

    def __init__(
        self,
        pr: Optional[dict] = None,
        commits: Optional[List[str]] = None,
        compares: Optional[Dict[Tuple[str, str], dict]] = None,
        contents: Optional[Dict[str, str]] = None,
        issue_comments: Optional[List[dict]] = None,
        review_comments: Optional[List[dict]] = None,
        fail_review: bool = False,
        delay: float = 0.0,
    ):
        self.pr = pr or {"number": 7, "title": "Add feature", "body": "", "base": {"sha": "base0"}, "head": {"sha": "c2"}}
        self.commits = commits or []
        self.compares = compares or {}
        self.contents = contents or {}
        self.issue_comments = issue_comments or []
        self.review_comments = review_comments or []
        self.fail_review = fail_review
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

        self.compare_calls: List[Tuple[str, str]] = []
        self.created_comments: List[str] = []
        self.updated_comments: List[Tuple[int, str]] = []
        self.reviews: List[dict] = []
        self.single_comments: List[dict] = []
        self.pr_updates: List[str] = []

    async def get_pull_request(self, pr_number: int) -> dict:
        return self.pr

    async def list_pull_commits(self, pr_number: int) -> List[dict]:
        return [{"sha": sha} for sha in self.commits]

    async def update_pull_request(self, pr_number: int, body: str) -> dict:
        self.pr_updates.append(body)
        return {"body": body}

    async def _busy(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

    async def compare_commits(self, base: str, head: str) -> dict:
        await self._busy()
        self.compare_calls.append((base, head))
        return copy.deepcopy(self.compares.get((base, head), {"files": [], "commits": []}))

    async def get_file_content(self, path: str, ref: str) -> Optional[str]:
        await self._busy()
        return self.contents.get(path)

    async def list_issue_comments(self, pr_number: int) -> List[dict]:
        return self.issue_comments

    async def create_issue_comment(self, pr_number: int, body: str) -> dict:
        await self._busy()
        self.created_comments.append(body)
        return {"id": 100 + len(self.created_comments), "body": body}

    async def update_issue_comment(self, comment_id: int, body: str) -> dict:
        self.updated_comments.append((comment_id, body))
        return {"id": comment_id, "body": body}

    async def list_review_comments(self, pr_number: int) -> List[dict]:
        await self._busy()
        return self.review_comments

    async def create_review(self, pr_number: int, commit_id: str, comments: List[dict], body: str = "") -> dict:
        if self.fail_review:
            raise RuntimeError("review rejected")
        self.reviews.append({"commit_id": commit_id, "comments": comments})
        return {"id": 1}

    async def create_review_comment(self, pr_number: int, commit_id: str, comment: dict) -> dict:
        self.single_comments.append(dict(comment, commit_id=commit_id))
        return {"id": 2}


@pytest.fixture
def token_counter():
    return char_count
