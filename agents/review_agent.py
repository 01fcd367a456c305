import logging
from typing import Callable, List, NamedTuple, Optional, Sequence

from agents.triage_agent import is_review_valid, needs_review
from models import PatchUnit, ReviewComment
from packer import pack_patches
from prompts import REVIEW_FILE_DIFF, REVIEW_PATCH_DIFF, Inputs
from review_parser import parse_review

logger = logging.getLogger(__name__)


class FileReviewOutcome(NamedTuple):
    comments: List[ReviewComment]
    packed: int
    total: int


async def review_file(
    filename: str,
    units: Sequence[PatchUnit],
    inputs: Inputs,
    bot,
    request_tokens: int,
    token_counter: Callable[[str], int],
    context_for: Optional[Callable[[PatchUnit], str]] = None,
    debug: bool = False,
) -> FileReviewOutcome:
    """
    Review as many of a file's units as fit in one request. Comments are
    anchored on the units that were actually sent.
    """
    logger.info("reviewing %s", filename)
    ins = inputs.clone()
    ins.filename = filename
    ins.patches = ""

    existing = token_counter(ins.render(REVIEW_FILE_DIFF))
    packed, text = pack_patches(units, existing, request_tokens, token_counter, context_for)
    if packed == 0:
        return FileReviewOutcome([], 0, len(units))
    if packed < len(units):
        logger.info(
            "unable to pack more patches into this request, packed: %d, total patches: %d, skipping.",
            packed, len(units),
        )

    ins.patches = text
    prompt = ins.render(REVIEW_FILE_DIFF)
    if debug:
        logger.debug("review prompt for %s: %s", filename, prompt)

    response = await bot.chat(prompt)
    if not response:
        logger.info("review: nothing obtained from model for %s", filename)
        return FileReviewOutcome([], packed, len(units))

    return FileReviewOutcome(parse_review(response, units[:packed], debug), packed, len(units))


async def review_hunk(
    filename: str,
    unit: PatchUnit,
    inputs: Inputs,
    light_bot,
    heavy_bot,
    debug: bool = False,
) -> Optional[ReviewComment]:
    """
    Triage one unit, review it on its own and keep the first comment only if
    the light model agrees it is valid.
    """
    ins = inputs.clone()
    ins.filename = filename
    ins.patch = unit.content

    if not await needs_review(ins, light_bot):
        logger.info("%s %d-%d: no review needed", filename, unit.start_line, unit.end_line)
        return None

    response = await heavy_bot.chat(ins.render(REVIEW_PATCH_DIFF))
    comments = parse_review(response, [unit], debug)
    if not comments:
        return None

    comment = comments[0]
    ins.review = comment.text
    if not await is_review_valid(ins, light_bot):
        logger.info("%s %d-%d: review judged invalid, dropped", filename, unit.start_line, unit.end_line)
        return None
    return comment
