import logging
from typing import Iterable, List, Sequence

from models import ChangedFile, CommitRange

logger = logging.getLogger(__name__)


def highest_reviewed_commit_id(reviewed_ids: Iterable[str], all_commit_ids: Sequence[str]) -> str:
    """Most recent branch commit (in branch order) that was already reviewed, or ""."""
    reviewed = set(reviewed_ids)
    for commit_id in reversed(all_commit_ids):
        if commit_id in reviewed:
            return commit_id
    return ""


def resolve_base(
    reviewed_ids: Iterable[str],
    all_commit_ids: Sequence[str],
    head_sha: str,
    fallback_base_sha: str,
) -> str:
    highest = highest_reviewed_commit_id(reviewed_ids, all_commit_ids)
    if not highest or highest == head_sha:
        logger.info("Will review from the base commit: %s", fallback_base_sha)
        return fallback_base_sha
    logger.info("Will review from commit: %s", highest)
    return highest


def incremental_range(
    reviewed_ids: Sequence[str],
    all_commit_ids: Sequence[str],
    head_sha: str,
    pr_base_sha: str,
) -> CommitRange:
    return CommitRange(
        base_sha=resolve_base(reviewed_ids, all_commit_ids, head_sha, pr_base_sha),
        head_sha=head_sha,
        reviewed_commit_ids=list(reviewed_ids),
    )


def eligible_files(incremental_files: Iterable[ChangedFile], target_files: Iterable[ChangedFile]) -> List[ChangedFile]:
    """
    Files of the full PR diff that were also touched since the last review.
    Taking them from the target diff keeps patches consistent with the PR base
    even if the incremental diff is stale after a history rewrite.
    """
    touched = {f.filename for f in incremental_files}
    return [f for f in target_files if f.filename in touched]
