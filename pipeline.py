import asyncio
import logging
from typing import Callable, Dict, List, NamedTuple, Optional

from agents.review_agent import review_file, review_hunk
from agents.summary_agent import summarize_file
from agents.writer_agent import compose_summary_comment, rollup_summaries, write_summary
from commit_tracker import eligible_files, incremental_range
from config import ReviewMode, Settings
from diff_parser import build_patch_units
from models import (
    ChangedFile,
    FileChangeSet,
    FileComment,
    FileSummary,
    PatchUnit,
    PullRequestInfo,
    ReviewComment,
    ReviewReport,
)
from prompts import Inputs
from utils.commenter import (
    COMMENT_TAG,
    SUMMARIZE_TAG,
    add_reviewed_commit_id,
    get_description,
    get_raw_summary,
    get_reviewed_commit_ids,
    get_reviewed_commit_ids_block,
    get_short_summary,
)
from utils.tokenizer import get_token_count

logger = logging.getLogger(__name__)

IGNORE_KEYWORD = "@pr-reviewer: ignore"
INVALID_TITLE_KEYWORDS = ["DON'T MERGE", "don't merge"]


class _FileResult(NamedTuple):
    filename: str
    comments: List[ReviewComment]
    failures: List[str]
    skipped: Optional[str] = None


def _changed_file(data: dict) -> ChangedFile:
    return ChangedFile(
        filename=data["filename"],
        status=data.get("status") or "modified",
        patch=data.get("patch"),
    )


def _capped(items: list, max_items: int):
    """Split into (dispatched, overflow); max_items <= 0 means no cap."""
    if max_items <= 0:
        return items, []
    return items[:max_items], items[max_items:]


class ReviewPipeline:
    """
    Summarize-then-review over every changed file of a pull request.

    Model calls and GitHub calls are bounded by two independent semaphores.
    A failure in one file is recorded on the report and never stops the
    other files.
    """

    def __init__(
        self,
        github,
        commenter,
        light_bot,
        heavy_bot,
        settings: Settings,
        token_counter: Callable[[str], int] = get_token_count,
    ):
        self.github = github
        self.commenter = commenter
        self.light_bot = light_bot
        self.heavy_bot = heavy_bot
        self.settings = settings
        self.token_counter = token_counter
        self.llm_limit = asyncio.Semaphore(settings.llm_concurrency_limit)
        self.github_limit = asyncio.Semaphore(settings.github_concurrency_limit)

    @staticmethod
    def _skip(report: ReviewReport, reason: str) -> ReviewReport:
        logger.warning("Skipped: %s", reason)
        report.status = "skipped"
        report.reason = reason
        return report

    async def run(self, pr: PullRequestInfo) -> ReviewReport:
        report = ReviewReport()
        inputs = Inputs(system_message=self.settings.system_message, title=pr.title)
        if pr.body:
            inputs.description = get_description(pr.body)

        if IGNORE_KEYWORD in inputs.description:
            return self._skip(report, "description contains ignore keyword")
        if any(keyword in pr.title for keyword in INVALID_TITLE_KEYWORDS):
            return self._skip(report, "title contains invalid keywords")

        commit_ids_block = ""
        existing = await self.commenter.find_comment_with_tag(SUMMARIZE_TAG)
        if existing is not None:
            body = existing.get("body") or ""
            commit_ids_block = get_reviewed_commit_ids_block(body)
            inputs.raw_summary = get_raw_summary(body).strip()
            inputs.short_summary = get_short_summary(body).strip()

        all_commit_ids = await self.commenter.get_all_commit_ids()
        commit_range = incremental_range(
            get_reviewed_commit_ids(commit_ids_block), all_commit_ids, pr.head_sha, pr.base_sha,
        )

        async with self.github_limit:
            incremental = await self.github.compare_commits(commit_range.base_sha, commit_range.head_sha)
            target = await self.github.compare_commits(pr.base_sha, pr.head_sha)
        if incremental.get("files") is None or target.get("files") is None:
            return self._skip(report, "files data is missing")

        files = eligible_files(
            [_changed_file(f) for f in incremental["files"]],
            [_changed_file(f) for f in target["files"]],
        )
        if not files:
            return self._skip(report, "no files changed since the last review")

        selected = []
        path_filter = self.settings.path_filter
        for f in files:
            if path_filter.check(f.filename):
                selected.append(f)
            else:
                logger.info("skip for excluded path: %s", f.filename)
        if not selected:
            return self._skip(report, "all files excluded by path filters")

        commits = incremental.get("commits") or []
        if not commits:
            return self._skip(report, "commits data is missing")

        change_sets = await self._load_change_sets(selected, pr.base_sha, report)
        if not change_sets:
            return self._skip(report, "no files to review")

        # files past the cap are neither summarized nor reviewed
        change_sets, overflow = _capped(change_sets, self.settings.max_files)
        report.skipped_files.extend(c.filename for c in overflow)

        # phase 1: summarize
        summaries = await self._summarize(change_sets, inputs, report)
        ordered = [summaries[c.filename] for c in change_sets if c.filename in summaries]
        if ordered:
            await rollup_summaries(ordered, inputs, self.heavy_bot)
        final_summary = await write_summary(
            inputs, self.heavy_bot, self.commenter,
            release_notes=not self.settings.disable_release_notes,
        )
        report.summary = final_summary

        # phase 2: review
        if not self.settings.disable_review:
            await self._review(change_sets, summaries, inputs, report)
            commit_ids_block = add_reviewed_commit_id(commit_ids_block, pr.head_sha)
            try:
                async with self.github_limit:
                    await self.commenter.submit_review(commits[-1]["sha"])
            except Exception as e:
                logger.warning("failed to submit review: %s", e)
                report.failed.append(f"review submission ({e})")

        summary_comment = compose_summary_comment(
            final_summary, inputs.raw_summary, inputs.short_summary, commit_ids_block,
        )
        async with self.github_limit:
            await self.commenter.comment(summary_comment, SUMMARIZE_TAG, "replace")
        return report

    async def _load_change_sets(self, files: List[ChangedFile], base_sha: str,
                                report: ReviewReport) -> List[FileChangeSet]:
        async def load(file: ChangedFile) -> Optional[FileChangeSet]:
            content = ""
            async with self.github_limit:
                try:
                    content = await self.github.get_file_content(file.filename, base_sha) or ""
                except Exception as e:
                    logger.warning("Failed to get file contents: %s. This is OK if it's a new file.", e)
            units = build_patch_units(file.patch)
            if not units:
                return None
            return FileChangeSet(
                filename=file.filename,
                base_file_content=content,
                full_diff_text=file.patch or "",
                patch_units=units,
            )

        async def guarded(file: ChangedFile):
            try:
                return await load(file)
            except Exception as e:
                logger.warning("failed to prepare %s: %s", file.filename, e)
                report.failed.append(f"{file.filename} ({e})")
                return None

        results = await asyncio.gather(*(guarded(f) for f in files))
        return [r for r in results if r is not None]

    async def _summarize(self, change_sets: List[FileChangeSet], inputs: Inputs,
                         report: ReviewReport) -> Dict[str, FileSummary]:
        async def summarize(cs: FileChangeSet):
            async with self.llm_limit:
                try:
                    return await summarize_file(
                        cs.filename, cs.full_diff_text, inputs, self.settings,
                        self.light_bot, self.token_counter,
                    ), None
                except Exception as e:
                    logger.warning("summarize: error from model for %s: %s", cs.filename, e)
                    return None, f"{cs.filename} (summary: {e})"

        results = await asyncio.gather(*(summarize(c) for c in change_sets))
        summaries: Dict[str, FileSummary] = {}
        for summary, failure in results:
            if failure:
                report.failed.append(failure)
            if summary is not None:
                summaries[summary.filename] = summary
        return summaries

    async def _review(self, change_sets: List[FileChangeSet], summaries: Dict[str, FileSummary],
                      inputs: Inputs, report: ReviewReport):
        to_review = []
        for cs in change_sets:
            summary = summaries.get(cs.filename)
            if summary is not None and not summary.needs_review:
                report.skipped_files.append(f"{cs.filename} (approved)")
            else:
                to_review.append(cs)

        if self.settings.review_mode is ReviewMode.BATCH:
            try:
                async with self.github_limit:
                    await self.commenter.load_review_comments()
            except Exception as e:
                logger.warning("Failed to get comments: %s, reviewing without comment chains", e)
            review = self._review_batched
        else:
            review = self._review_per_hunk

        results = await asyncio.gather(*(review(cs, inputs) for cs in to_review))
        self._merge(results, report)

    def _comment_chain(self, filename: str, unit: PatchUnit) -> str:
        try:
            return self.commenter.get_comment_chains_within_range(
                filename, unit.start_line, unit.end_line, COMMENT_TAG,
            )
        except Exception as e:
            logger.warning("Failed to get comment chains for %s: %s", filename, e)
            return ""

    async def _review_batched(self, cs: FileChangeSet, inputs: Inputs) -> _FileResult:
        async with self.llm_limit:
            try:
                outcome = await review_file(
                    cs.filename, cs.patch_units, inputs, self.heavy_bot,
                    self.settings.heavy_token_limits.request_tokens, self.token_counter,
                    context_for=lambda unit: self._comment_chain(cs.filename, unit),
                    debug=self.settings.debug,
                )
            except Exception as e:
                logger.warning("Failed to review %s: %s, skipping.", cs.filename, e)
                return _FileResult(cs.filename, [], [f"{cs.filename} ({e})"])

        if outcome.packed == 0:
            return _FileResult(cs.filename, [], [], skipped=f"{cs.filename} (diff too large)")
        return _FileResult(cs.filename, outcome.comments, [])

    async def _review_per_hunk(self, cs: FileChangeSet, inputs: Inputs) -> _FileResult:
        logger.info("reviewing %s", cs.filename)
        comments, failures = [], []
        for unit in cs.patch_units:
            async with self.llm_limit:
                try:
                    comment = await review_hunk(
                        cs.filename, unit, inputs, self.light_bot, self.heavy_bot, self.settings.debug,
                    )
                except Exception as e:
                    logger.warning("Failed to review %s %d-%d: %s, skipping.",
                                   cs.filename, unit.start_line, unit.end_line, e)
                    failures.append(f"{cs.filename} {unit.start_line}-{unit.end_line} ({e})")
                    continue
            if comment is not None:
                comments.append(comment)
        return _FileResult(cs.filename, comments, failures)

    def _merge(self, results: List[_FileResult], report: ReviewReport):
        """Fold per-file results into the report and the comment buffer, in file order."""
        for result in results:
            report.failed.extend(result.failures)
            if result.skipped:
                report.skipped_files.append(result.skipped)
                continue
            report.reviewed_files.append(result.filename)

            for comment in result.comments:
                if self.settings.is_skip_comment(comment.text):
                    continue
                try:
                    self.commenter.buffer_review_comment(
                        result.filename, comment.start_line, comment.end_line, comment.text,
                    )
                except Exception as e:
                    report.failed.append(f"{result.filename} comment failed ({e})")
                    continue
                report.comments.append(FileComment(
                    file=result.filename,
                    start_line=comment.start_line,
                    end_line=comment.end_line,
                    comment=comment.text,
                ))
