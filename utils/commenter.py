# utils/commenter.py

import logging
from typing import Dict, List, Optional

from models import BufferedComment
from utils.github_client import GitHubClient

logger = logging.getLogger(__name__)

COMMENT_GREETING = ":robot: PR Review Agent"

COMMENT_TAG = "<!-- This is an auto-generated comment by pr-review-agent -->"
SUMMARIZE_TAG = "<!-- This is an auto-generated comment: summarize by pr-review-agent -->"

RAW_SUMMARY_START_TAG = "<!-- This is an auto-generated comment: raw summary by pr-review-agent -->\n<!--\n"
RAW_SUMMARY_END_TAG = "-->\n<!-- end of auto-generated comment: raw summary by pr-review-agent -->"
SHORT_SUMMARY_START_TAG = "<!-- This is an auto-generated comment: short summary by pr-review-agent -->\n<!--\n"
SHORT_SUMMARY_END_TAG = "-->\n<!-- end of auto-generated comment: short summary by pr-review-agent -->"

DESCRIPTION_START_TAG = "<!-- This is an auto-generated comment: release notes by pr-review-agent -->"
DESCRIPTION_END_TAG = "<!-- end of auto-generated comment: release notes by pr-review-agent -->"

COMMIT_ID_START_TAG = "<!-- commit_ids_reviewed_start -->"
COMMIT_ID_END_TAG = "<!-- commit_ids_reviewed_end -->"


# -----------------------------------------------------------
# Tagged blocks inside comment bodies
# -----------------------------------------------------------
def get_content_within_tags(content: str, start_tag: str, end_tag: str) -> str:
    start = content.find(start_tag)
    end = content.find(end_tag, start + len(start_tag)) if start != -1 else -1
    if start == -1 or end == -1:
        return ""
    return content[start + len(start_tag):end]


def remove_content_within_tags(content: str, start_tag: str, end_tag: str) -> str:
    start = content.find(start_tag)
    end = content.rfind(end_tag)
    if start == -1 or end == -1 or end < start:
        return content
    return content[:start] + content[end + len(end_tag):]


def get_raw_summary(body: str) -> str:
    return get_content_within_tags(body, RAW_SUMMARY_START_TAG, RAW_SUMMARY_END_TAG)


def get_short_summary(body: str) -> str:
    return get_content_within_tags(body, SHORT_SUMMARY_START_TAG, SHORT_SUMMARY_END_TAG)


def get_description(body: str) -> str:
    """PR description without the release notes we wrote into it."""
    return remove_content_within_tags(body, DESCRIPTION_START_TAG, DESCRIPTION_END_TAG)


def get_reviewed_commit_ids_block(body: str) -> str:
    start = body.find(COMMIT_ID_START_TAG)
    end = body.find(COMMIT_ID_END_TAG)
    if start == -1 or end == -1 or end < start:
        return ""
    return body[start:end + len(COMMIT_ID_END_TAG)]


def get_reviewed_commit_ids(body: str) -> List[str]:
    """
    Decode `<!-- sha -->` entries between the commit-id tags, in the order
    they were written.
    """
    inner = get_content_within_tags(body, COMMIT_ID_START_TAG, COMMIT_ID_END_TAG)
    ids = []
    for chunk in inner.split("<!--"):
        commit_id = chunk.replace("-->", "").strip()
        if commit_id:
            ids.append(commit_id)
    return ids


def add_reviewed_commit_id(block: str, commit_id: str) -> str:
    """Re-encode the block with `commit_id` appended, creating it if absent."""
    start = block.find(COMMIT_ID_START_TAG)
    end = block.find(COMMIT_ID_END_TAG)
    if start == -1 or end == -1:
        return f"{block}\n{COMMIT_ID_START_TAG}\n<!-- {commit_id} -->\n{COMMIT_ID_END_TAG}"
    return f"{block[:end]}<!-- {commit_id} -->\n{block[end:]}"


def _review_comment_payload(comment: BufferedComment) -> dict:
    payload = {
        "path": comment.path,
        "body": comment.message,
        "line": comment.end_line,
        "side": "RIGHT",
    }
    if comment.start_line != comment.end_line:
        payload["start_line"] = comment.start_line
        payload["start_side"] = "RIGHT"
    return payload


class Commenter:
    """Reads and writes the PR comments the reviewer owns."""

    def __init__(self, github: GitHubClient, pr_number: int):
        self.github = github
        self.pr_number = pr_number
        self.review_comments_buffer: List[BufferedComment] = []
        self._review_comments: Optional[List[dict]] = None

    async def find_comment_with_tag(self, tag: str) -> Optional[dict]:
        for comment in await self.github.list_issue_comments(self.pr_number):
            if tag in (comment.get("body") or ""):
                return comment
        return None

    async def comment(self, message: str, tag: str = COMMENT_TAG, mode: str = "replace") -> dict:
        body = f"{COMMENT_GREETING}\n\n{message}\n\n{tag}"
        if mode == "replace":
            existing = await self.find_comment_with_tag(tag)
            if existing is not None:
                return await self.github.update_issue_comment(existing["id"], body)
        return await self.github.create_issue_comment(self.pr_number, body)

    async def get_all_commit_ids(self) -> List[str]:
        return [c["sha"] for c in await self.github.list_pull_commits(self.pr_number)]

    async def update_description(self, message: str):
        pr = await self.github.get_pull_request(self.pr_number)
        description = get_description(pr.get("body") or "").rstrip()
        body = f"{description}\n\n{DESCRIPTION_START_TAG}\n{message}\n{DESCRIPTION_END_TAG}"
        await self.github.update_pull_request(self.pr_number, body)

    # -----------------------------------------------------------
    # Inline review comments
    # -----------------------------------------------------------
    def buffer_review_comment(self, path: str, start_line: int, end_line: int, message: str):
        message = f"{COMMENT_GREETING}\n\n{message}\n\n{COMMENT_TAG}"
        self.review_comments_buffer.append(BufferedComment(
            path=path, start_line=start_line, end_line=end_line, message=message,
        ))

    async def submit_review(self, commit_id: str) -> int:
        """
        Post every buffered comment as one review on `commit_id`. If the review
        is rejected the comments are posted one by one. Returns how many landed.
        """
        if not self.review_comments_buffer:
            logger.info("submit_review: no comments to submit")
            return 0

        payloads = [_review_comment_payload(c) for c in self.review_comments_buffer]
        try:
            await self.github.create_review(self.pr_number, commit_id, payloads)
            return len(payloads)
        except Exception as e:
            logger.warning("failed to submit review, posting comments one by one: %s", e)

        posted = 0
        for payload in payloads:
            try:
                await self.github.create_review_comment(self.pr_number, commit_id, payload)
                posted += 1
            except Exception as e:
                logger.warning(
                    "failed to post review comment on %s:%d: %s", payload["path"], payload["line"], e,
                )
        return posted

    async def load_review_comments(self) -> List[dict]:
        if self._review_comments is None:
            self._review_comments = await self.github.list_review_comments(self.pr_number)
        return self._review_comments

    def get_comment_chains_within_range(self, path: str, start_line: int, end_line: int, tag: str = "") -> str:
        """
        Threads on `path` whose range lies within start_line..end_line, rendered
        as "user: body" lines. Only threads containing `tag` are kept when a tag
        is given. load_review_comments() must have been awaited first.
        """
        comments = self._review_comments or []
        in_range = [
            c for c in comments
            if c.get("path") == path and c.get("body") and _within(c, start_line, end_line)
        ]

        replies: Dict[int, List[dict]] = {}
        for c in comments:
            parent = c.get("in_reply_to_id")
            if parent is not None:
                replies.setdefault(parent, []).append(c)

        chains = []
        for top in in_range:
            if top.get("in_reply_to_id") is not None:
                continue
            thread = [top] + replies.get(top["id"], [])
            if tag and not any(tag in (c.get("body") or "") for c in thread):
                continue
            chains.append("\n---\n".join(
                f"{(c.get('user') or {}).get('login', 'user')}: {c.get('body')}" for c in thread
            ))
        return "\n---\n".join(chains)


def _within(comment: dict, start_line: int, end_line: int) -> bool:
    line = comment.get("line")
    if line is None:
        return False
    first = comment.get("start_line") or line
    return first >= start_line and line <= end_line
