import logging
import re
from unidiff import PatchSet
from typing import List, Optional

from models import AnnotatedHunk, ChangedFile, Hunk, PatchUnit

logger = logging.getLogger(__name__)

# lengths are optional in unified diffs and default to 1
HUNK_HEADER_RE = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_len>\d+))? \+(?P<new_start>\d+)(?:,(?P<new_len>\d+))? @@.*$",
    re.MULTILINE,
)

# context lines this close to either edge of a hunk body stay unnumbered
SKIP_START = 3
SKIP_END = 3


class HunkHeaderError(ValueError):
    """Raised when a hunk string carries no `@@ -a,b +c,d @@` header."""


def split_patch(patch: Optional[str]) -> List[str]:
    """
    Slice one file's unified diff into hunk strings, each starting at its header.
    Anything before the first header (e.g. `diff --git` lines) is dropped.
    """
    if not patch:
        return []
    starts = [m.start() for m in HUNK_HEADER_RE.finditer(patch)]
    ends = starts[1:] + [len(patch)]
    return [patch[s:e] for s, e in zip(starts, ends)]


def parse_hunk(hunk_text: str) -> Hunk:
    m = HUNK_HEADER_RE.search(hunk_text)
    if m is None:
        raise HunkHeaderError("no hunk header found")

    _, _, body = hunk_text[m.start():].partition("\n")
    return Hunk(
        old_start=int(m.group("old_start")),
        old_len=int(m.group("old_len") or 1),
        new_start=int(m.group("new_start")),
        new_len=int(m.group("new_len") or 1),
        raw_body=body,
    )


def _body_lines(raw_body: str) -> List[str]:
    lines = raw_body.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    # "\ No newline at end of file" is a marker, not a file line
    return [line for line in lines if not line.startswith("\\")]


def annotate_hunk(hunk_text: str) -> AnnotatedHunk:
    """
    Build the old/new views of one hunk. The new view carries "<lineNo>: "
    prefixes on added lines and on context lines outside the skip window.
    A hunk without any added line numbers every context line instead.
    """
    hunk = parse_hunk(hunk_text)
    lines = _body_lines(hunk.raw_body)
    removal_only = not any(line.startswith("+") for line in lines)

    old_lines: List[str] = []
    new_lines: List[str] = []
    new_line = hunk.new_start

    for position, line in enumerate(lines, start=1):
        if line.startswith("-"):
            old_lines.append(line[1:])
        elif line.startswith("+"):
            new_lines.append(f"{new_line}: {line[1:]}")
            new_line += 1
        else:
            old_lines.append(line)
            if removal_only or SKIP_START < position <= len(lines) - SKIP_END:
                new_lines.append(f"{new_line}: {line}")
            else:
                new_lines.append(line)
            new_line += 1

    return AnnotatedHunk(old_view="\n".join(old_lines), new_view="\n".join(new_lines))


def render_hunk(annotated: AnnotatedHunk) -> str:
    return (
        "\n---new_hunk---\n"
        "```\n"
        f"{annotated.new_view}\n"
        "```\n"
        "\n---old_hunk---\n"
        "```\n"
        f"{annotated.old_view}\n"
        "```\n"
    )


def build_patch_units(patch: Optional[str]) -> List[PatchUnit]:
    units: List[PatchUnit] = []
    for hunk_text in split_patch(patch):
        try:
            hunk = parse_hunk(hunk_text)
        except HunkHeaderError:
            continue
        if hunk.new_len == 0:
            # pure deletion of the tail of a file: no new-file line to anchor on
            logger.debug("skipping hunk with empty new side at -%d,%d", hunk.old_start, hunk.old_len)
            continue
        units.append(PatchUnit(
            start_line=hunk.new_start,
            end_line=hunk.new_end,
            content=render_hunk(annotate_hunk(hunk_text)),
        ))
    return units


def parse_unified_diff(diff_text: str) -> List[ChangedFile]:
    """Split a multi-file unified diff into per-file patches."""
    patch = PatchSet(diff_text.splitlines(keepends=True))
    files = []
    for patched_file in patch:
        if patched_file.is_added_file:
            status = "added"
        elif patched_file.is_removed_file:
            status = "removed"
        else:
            status = "modified"
        files.append(ChangedFile(
            filename=patched_file.path,
            status=status,
            patch="".join(str(hunk) for hunk in patched_file),
        ))
    return files
