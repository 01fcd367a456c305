import logging
import re

from prompts import CHECK_REVIEW_VALIDITY, TRIAGE_PATCH_DIFF, Inputs

logger = logging.getLogger(__name__)

NEEDS_REVIEW_RE = re.compile(r"\[TRIAGE\]:\s*(NEEDS_REVIEW|APPROVED)")
VALIDITY_RE = re.compile(r"\[TRIAGE\]:\s*(VALID|INVALID)")


def _verdict(response: str, pattern: "re.Pattern", positive: str) -> bool:
    if not response:
        return False
    m = pattern.search(response)
    return m is not None and m.group(1) == positive


async def needs_review(ins: Inputs, bot) -> bool:
    """Ask the light model whether a single hunk (`ins.patch`) deserves a review."""
    try:
        response = await bot.chat(ins.render(TRIAGE_PATCH_DIFF))
    except Exception as e:
        logger.warning("failed to check if %s needs review: %s", ins.filename, e)
        return False
    return _verdict(response, NEEDS_REVIEW_RE, "NEEDS_REVIEW")


async def is_review_valid(ins: Inputs, bot) -> bool:
    """Ask the light model whether `ins.review` actually points at a problem in `ins.patch`."""
    try:
        response = await bot.chat(ins.render(CHECK_REVIEW_VALIDITY))
    except Exception as e:
        logger.warning("failed to check review validity for %s: %s", ins.filename, e)
        return False
    return _verdict(response, VALIDITY_RE, "VALID")
