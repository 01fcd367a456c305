import asyncio

import pytest

from config import ReviewMode, Settings
from conftest import FakeBot, FakeGitHub, char_count
from models import PullRequestInfo
from pipeline import IGNORE_KEYWORD, ReviewPipeline
from utils.commenter import SUMMARIZE_TAG, Commenter, add_reviewed_commit_id, get_reviewed_commit_ids

PATCH_A = (
    "@@ -1,3 +1,4 @@\n"
    " def f():\n"
    "-    return 1\n"
    "+    return 2\n"
    "+    # note\n"
)
PATCH_B = "@@ -10,2 +10,3 @@\n x = 1\n+y = 2\n z = 3\n"
PATCH_C = "@@ -1,1 +1,2 @@\n x\n+y\n"

PR = PullRequestInfo(number=7, title="Add feature", body="Does things", base_sha="base0", head_sha="c2")


def _files(*names):
    patches = {"a.py": PATCH_A, "b.py": PATCH_B, "c.py": PATCH_C, "d.py": PATCH_C}
    return [{"filename": n, "status": "modified", "patch": patches[n]} for n in names]


def _github(**kwargs):
    compares = kwargs.pop("compares", None) or {
        ("base0", "c2"): {"files": _files("a.py", "b.py"), "commits": [{"sha": "c1"}, {"sha": "c2"}]},
    }
    return FakeGitHub(commits=["c1", "c2"], compares=compares, **kwargs)


def light_responder(verdicts=None):
    verdicts = verdicts or {}

    def respond(prompt):
        if "[TRIAGE]: <VALID or INVALID>" in prompt:
            return "[TRIAGE]: VALID"
        if "## Diff\n" in prompt and "succinctly summarize" not in prompt:
            return "[TRIAGE]: NEEDS_REVIEW"
        for filename, verdict in verdicts.items():
            if PATCH_A in prompt and filename == "a.py" or PATCH_B in prompt and filename == "b.py":
                return f"summary of {filename}\n[TRIAGE]: {verdict}"
        return "a summary\n[TRIAGE]: NEEDS_REVIEW"
    return respond


def heavy_responder(reviews=None, fail=()):
    reviews = reviews if reviews is not None else {"a.py": "2-3:\nPossible bug\n---", "b.py": "11-11:\nUnused y\n---"}

    def respond(prompt):
        for filename, review in reviews.items():
            if f"Changes made to `{filename}`" in prompt:
                if filename in fail:
                    raise RuntimeError(f"model exploded on {filename}")
                return review
        if "Walkthrough" in prompt and "Provide your final response" in prompt:
            return "## Walkthrough\nfinal summary"
        if "concise summary of the changes" in prompt:
            return "short summary"
        if "release notes" in prompt:
            return "- New Feature: things"
        return "rolled changesets"
    return respond


def _pipeline(github, light=None, heavy=None, **settings):
    settings.setdefault("disable_release_notes", True)
    return ReviewPipeline(
        github,
        Commenter(github, PR.number),
        light or FakeBot(light_responder()),
        heavy or FakeBot(heavy_responder()),
        Settings(**settings),
        token_counter=char_count,
    )


@pytest.mark.asyncio
async def test_full_run_posts_review_and_summary():
    github = _github()
    report = await _pipeline(github).run(PR)

    assert report.status == "completed"
    assert report.reviewed_files == ["a.py", "b.py"]
    assert report.failed == []
    assert [(c.file, c.start_line, c.end_line) for c in report.comments] == [("a.py", 2, 3), ("b.py", 11, 11)]

    assert len(github.reviews) == 1
    review = github.reviews[0]
    assert review["commit_id"] == "c2"
    first, second = review["comments"]
    assert (first["path"], first["start_line"], first["line"]) == ("a.py", 2, 3)
    assert (second["path"], second["line"]) == ("b.py", 11)

    summary = github.created_comments[-1]
    assert SUMMARIZE_TAG in summary
    assert "final summary" in summary
    assert get_reviewed_commit_ids(summary) == ["c2"]


@pytest.mark.asyncio
async def test_incremental_review_starts_after_last_reviewed_commit():
    previous = f"old\n{add_reviewed_commit_id('', 'c1')}\n{SUMMARIZE_TAG}"
    github = _github(
        issue_comments=[{"id": 55, "body": previous}],
        compares={
            ("c1", "c2"): {"files": _files("a.py"), "commits": [{"sha": "c2"}]},
            ("base0", "c2"): {"files": _files("a.py", "b.py"), "commits": [{"sha": "c1"}, {"sha": "c2"}]},
        },
    )
    report = await _pipeline(github).run(PR)

    assert github.compare_calls[0] == ("c1", "c2")
    assert report.reviewed_files == ["a.py"]
    comment_id, body = github.updated_comments[-1]
    assert comment_id == 55
    assert get_reviewed_commit_ids(body) == ["c1", "c2"]


@pytest.mark.asyncio
async def test_missing_diff_aborts_without_posting():
    github = _github(compares={("base0", "c2"): {"files": None, "commits": []}})
    report = await _pipeline(github).run(PR)
    assert report.status == "skipped"
    assert report.reason == "files data is missing"
    assert github.created_comments == []
    assert github.reviews == []


@pytest.mark.asyncio
async def test_no_eligible_files_is_a_clean_noop():
    github = _github(compares={("base0", "c2"): {"files": [], "commits": [{"sha": "c2"}]}})
    report = await _pipeline(github).run(PR)
    assert report.status == "skipped"
    assert report.failed == []
    assert github.created_comments == []


@pytest.mark.asyncio
async def test_path_filters_can_exclude_everything():
    report = await _pipeline(_github(), path_filters=["!**/*.py"]).run(PR)
    assert report.status == "skipped"


@pytest.mark.asyncio
async def test_ignore_keyword_skips_run():
    github = _github()
    pr = PR.model_copy(update={"body": f"please {IGNORE_KEYWORD}"})
    report = await _pipeline(github).run(pr)
    assert report.status == "skipped"
    assert github.compare_calls == []


@pytest.mark.asyncio
async def test_per_file_failure_does_not_stop_siblings():
    github = _github()
    heavy = FakeBot(heavy_responder(fail=("b.py",)))
    report = await _pipeline(github, heavy=heavy).run(PR)

    assert report.reviewed_files == ["a.py"]
    assert len(report.failed) == 1 and report.failed[0].startswith("b.py")
    assert [c["path"] for c in github.reviews[0]["comments"]] == ["a.py"]
    assert github.created_comments


@pytest.mark.asyncio
async def test_approved_files_skip_review():
    light = FakeBot(light_responder({"b.py": "APPROVED"}))
    report = await _pipeline(_github(), light=light).run(PR)
    assert report.reviewed_files == ["a.py"]
    assert "b.py (approved)" in report.skipped_files


@pytest.mark.asyncio
async def test_skip_phrases_filter_comments():
    heavy = FakeBot(heavy_responder({"a.py": "2-3:\nLGTM!\n---", "b.py": "11-11:\nUnused y\n---"}))
    report = await _pipeline(_github(), heavy=heavy).run(PR)
    assert [c.file for c in report.comments] == ["b.py"]

    heavy = FakeBot(heavy_responder({"a.py": "2-3:\nLGTM!\n---", "b.py": "11-11:\nUnused y\n---"}))
    report = await _pipeline(_github(), heavy=heavy, review_comment_lgtm=True).run(PR)
    assert [c.file for c in report.comments] == ["a.py", "b.py"]


@pytest.mark.asyncio
async def test_max_files_caps_dispatch():
    report = await _pipeline(_github(), max_files=1).run(PR)
    assert report.reviewed_files == ["a.py"]
    assert "b.py" in report.skipped_files


@pytest.mark.asyncio
async def test_results_merge_in_file_order_not_completion_order():
    reviews = {"a.py": "2-3:\nslow\n---", "b.py": "11-11:\nfast\n---"}
    plain = heavy_responder(reviews)

    async def respond(prompt):
        if "Changes made to `a.py`" in prompt:
            await asyncio.sleep(0.05)
        return plain(prompt)

    report = await _pipeline(_github(), heavy=FakeBot(respond)).run(PR)
    assert [c.file for c in report.comments] == ["a.py", "b.py"]


@pytest.mark.asyncio
async def test_model_concurrency_is_bounded():
    heavy = FakeBot(heavy_responder(), delay=0.01)
    light = FakeBot(light_responder(), delay=0.01)
    await _pipeline(_github(), light=light, heavy=heavy, llm_concurrency_limit=1).run(PR)
    assert light.max_in_flight == 1
    assert heavy.max_in_flight == 1


@pytest.mark.asyncio
async def test_out_of_range_comment_is_remapped():
    heavy = FakeBot(heavy_responder({"a.py": "3-8:\nSpills over\n---", "b.py": ""}))
    report = await _pipeline(_github(), heavy=heavy).run(PR)
    comment = report.comments[0]
    assert (comment.start_line, comment.end_line) == (1, 4)
    assert "Original lines [3-8]" in comment.comment


@pytest.mark.asyncio
async def test_per_hunk_mode():
    github = _github()
    report = await _pipeline(github, review_mode=ReviewMode.HUNK).run(PR)
    assert report.reviewed_files == ["a.py", "b.py"]
    assert [(c.file, c.start_line, c.end_line) for c in report.comments] == [("a.py", 2, 3), ("b.py", 11, 11)]
    assert github.reviews[0]["commit_id"] == "c2"


@pytest.mark.asyncio
async def test_disable_review_keeps_previous_commit_ids():
    previous = f"old\n{add_reviewed_commit_id('', 'c1')}\n{SUMMARIZE_TAG}"
    github = _github(
        issue_comments=[{"id": 55, "body": previous}],
        compares={
            ("c1", "c2"): {"files": _files("a.py"), "commits": [{"sha": "c2"}]},
            ("base0", "c2"): {"files": _files("a.py"), "commits": [{"sha": "c2"}]},
        },
    )
    report = await _pipeline(github, disable_review=True).run(PR)
    assert report.comments == []
    assert github.reviews == []
    assert get_reviewed_commit_ids(github.updated_comments[-1][1]) == ["c1"]


@pytest.mark.asyncio
async def test_github_concurrency_is_bounded():
    names = ("a.py", "b.py", "c.py", "d.py")
    compares = {("base0", "c2"): {"files": _files(*names), "commits": [{"sha": "c1"}, {"sha": "c2"}]}}

    github = _github(compares=compares, delay=0.01)
    report = await _pipeline(github, llm_concurrency_limit=10, github_concurrency_limit=1).run(PR)
    assert report.reviewed_files == list(names)
    assert github.max_in_flight == 1

    github = _github(compares=compares, delay=0.01)
    await _pipeline(github, llm_concurrency_limit=10, github_concurrency_limit=4).run(PR)
    assert github.max_in_flight > 1


@pytest.mark.asyncio
async def test_files_past_the_cap_stay_skipped_when_others_are_approved():
    light = FakeBot(light_responder({"a.py": "APPROVED"}))
    github = _github()
    report = await _pipeline(github, light=light, max_files=1).run(PR)
    assert report.reviewed_files == []
    assert report.skipped_files == ["b.py", "a.py (approved)"]
    assert not any(PATCH_B in prompt for prompt in light.prompts)
    assert github.reviews == []
