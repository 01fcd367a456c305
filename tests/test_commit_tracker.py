from commit_tracker import eligible_files, highest_reviewed_commit_id, incremental_range, resolve_base
from models import ChangedFile

BRANCH = ["a1", "b2", "c3", "d4"]


class TestResolveBase:

    def test_nothing_reviewed_uses_fallback(self):
        assert resolve_base([], BRANCH, "d4", "base") == "base"

    def test_most_recent_reviewed_commit(self):
        assert resolve_base(["a1", "b2"], BRANCH, "d4", "base") == "b2"

    def test_branch_order_wins_over_stored_order(self):
        assert resolve_base(["c3", "a1"], BRANCH, "d4", "base") == "c3"
        assert resolve_base(["a1", "c3"], BRANCH, "d4", "base") == "c3"

    def test_head_already_reviewed_uses_fallback(self):
        assert resolve_base(["b2", "d4"], BRANCH, "d4", "base") == "base"

    def test_reviewed_commits_not_on_branch(self):
        # e.g. after a force push
        assert resolve_base(["zz9"], BRANCH, "d4", "base") == "base"


def test_highest_reviewed_commit_id_empty():
    assert highest_reviewed_commit_id(["x"], []) == ""


def test_eligible_files_keep_target_patches():
    target = [
        ChangedFile(filename="a.py", patch="@@ -1 +1 @@\n-a\n+A\n"),
        ChangedFile(filename="b.py", patch="@@ -1 +1 @@\n-b\n+B\n"),
        ChangedFile(filename="c.py", patch="@@ -1 +1 @@\n-c\n+C\n"),
    ]
    incremental = [
        ChangedFile(filename="b.py", patch="@@ -1 +1 @@\n-stale\n+B\n"),
        ChangedFile(filename="gone.py", patch="@@ -1 +1 @@\n-x\n+y\n"),
    ]
    files = eligible_files(incremental, target)
    assert [f.filename for f in files] == ["b.py"]
    assert files[0].patch == "@@ -1 +1 @@\n-b\n+B\n"


def test_incremental_range():
    commit_range = incremental_range(["a1", "b2"], BRANCH, "d4", "base")
    assert (commit_range.base_sha, commit_range.head_sha) == ("b2", "d4")
    assert commit_range.reviewed_commit_ids == ["a1", "b2"]
