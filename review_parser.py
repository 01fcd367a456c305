import logging
import re
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from models import PatchUnit, ReviewComment

logger = logging.getLogger(__name__)

LINE_RANGE_RE = re.compile(r"^\s*(\d+)-(\d+):\s*$")
COMMENT_SEPARATOR = "---"

# fenced blocks whose "<n>: " line prefixes are copied annotation, not code
_SANITIZED_BLOCK_RE = re.compile(r"(```(?:suggestion|diff))(.*?)(```)", re.DOTALL)
_LINE_NUMBER_PREFIX_RE = re.compile(r"^ *\d+: ", re.MULTILINE)

OVERLAP_NOTE = (
    "> Note: This review was outside of the patch, so it was mapped to greatest overlap "
    "patch [{patch_start}-{patch_end}]. Original lines [{start}-{end}]\n\n"
)
NO_OVERLAP_NOTE = (
    "> Note: This review was outside of the patch, but no overlapping patch was found. "
    "Original lines [{start}-{end}]\n\n"
)


class ScanState(Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    FLUSHED = "flushed"


def sanitize_response(response: str) -> str:
    def _strip(match: "re.Match") -> str:
        return match.group(1) + _LINE_NUMBER_PREFIX_RE.sub("", match.group(2)) + match.group(3)

    return _SANITIZED_BLOCK_RE.sub(_strip, response)


def _intersection(a_start: int, a_end: int, b_start: int, b_end: int) -> int:
    return max(0, min(a_end, b_end) - max(a_start, b_start) + 1)


def reconcile(comment: ReviewComment, units: Sequence[PatchUnit]) -> ReviewComment:
    """
    Anchor a comment on a known unit range. A comment fully inside a unit is
    returned as is; otherwise it moves to the unit it overlaps most, or to the
    first unit when it overlaps none, with a note naming the original lines.
    """
    own_length = comment.end_line - comment.start_line + 1
    best: Optional[PatchUnit] = None
    best_overlap = 0

    for unit in units:
        overlap = _intersection(comment.start_line, comment.end_line, unit.start_line, unit.end_line)
        if overlap > best_overlap:
            best, best_overlap = unit, overlap
            if overlap == own_length:
                break

    if best is not None and best_overlap == own_length:
        return comment

    if best is not None:
        note = OVERLAP_NOTE.format(
            patch_start=best.start_line, patch_end=best.end_line,
            start=comment.start_line, end=comment.end_line,
        )
        target = best
    else:
        note = NO_OVERLAP_NOTE.format(start=comment.start_line, end=comment.end_line)
        target = units[0]

    return ReviewComment(start_line=target.start_line, end_line=target.end_line, text=note + comment.text)


class _Scanner:
    def __init__(self, units: Sequence[PatchUnit], debug: bool):
        self.units = units
        self.debug = debug
        self.state = ScanState.IDLE
        self.current: Optional[Tuple[int, int]] = None
        self.body: List[str] = []
        self.comments: List[ReviewComment] = []

    def open(self, start: int, end: int):
        self.flush()
        if start > end:
            start, end = end, start
        self.current = (start, end)
        self.body = []
        self.state = ScanState.COLLECTING
        if self.debug:
            logger.debug("found line number range: %d-%d", start, end)

    def flush(self):
        if self.state is not ScanState.COLLECTING:
            return
        start, end = self.current
        text = "".join(self.body)
        self.current = None
        self.body = []
        self.state = ScanState.FLUSHED

        if not self.units:
            logger.warning("dropping comment for %d-%d: no patch to anchor it on", start, end)
            return
        comment = reconcile(ReviewComment(start_line=start, end_line=end, text=text), self.units)
        self.comments.append(comment)
        logger.info("stored comment for line range %d-%d: %s", start, end, text.strip()[:200])

    def feed(self, line: str):
        m = LINE_RANGE_RE.match(line)
        if m:
            self.open(int(m.group(1)), int(m.group(2)))
        elif line.strip() == COMMENT_SEPARATOR:
            self.flush()
            self.state = ScanState.FLUSHED
        elif self.state is ScanState.COLLECTING:
            self.body.append(line + "\n")


def parse_review(response: str, units: Sequence[PatchUnit], debug: bool = False) -> List[ReviewComment]:
    """
    Parse a model response of the form

        22-25:
        comment text
        ---

    into comments anchored on the given units. Text outside a range section is
    ignored; an empty or unparsable response yields no comments.
    """
    if not response:
        return []

    scanner = _Scanner(units, debug)
    for line in sanitize_response(response.strip()).split("\n"):
        scanner.feed(line)
    scanner.flush()
    return scanner.comments
