import logging
import re
from typing import Callable, Optional

from config import Settings
from models import FileSummary
from prompts import Inputs, render_summarize_file_diff

logger = logging.getLogger(__name__)

TRIAGE_RE = re.compile(r"\[TRIAGE\]:\s*(NEEDS_REVIEW|APPROVED)")


def parse_triage(response: str):
    """Split a summary response into (summary, needs_review). needs_review is None without a verdict."""
    m = TRIAGE_RE.search(response)
    if m is None:
        return response, None
    return TRIAGE_RE.sub("", response).strip(), m.group(1) == "NEEDS_REVIEW"


async def summarize_file(
    filename: str,
    file_diff: str,
    inputs: Inputs,
    settings: Settings,
    bot,
    token_counter: Callable[[str], int],
) -> Optional[FileSummary]:
    """
    Summarize one file's diff with the light model. Returns None when there is
    nothing to summarize, the prompt is over budget, or the model says nothing.
    """
    logger.info("summarize: %s", filename)
    if not file_diff:
        logger.warning("summarize: file_diff is empty, skip %s", filename)
        return None

    ins = inputs.clone()
    ins.filename = filename
    ins.file_diff = file_diff

    prompt = render_summarize_file_diff(ins, settings.review_simple_changes)
    if token_counter(prompt) > settings.light_token_limits.request_tokens:
        logger.info("summarize: diff tokens exceeds limit, skip %s", filename)
        return None

    response = await bot.chat(prompt)
    if not response:
        logger.info("summarize: nothing obtained from model for %s", filename)
        return None

    if not settings.review_simple_changes:
        summary, needs_review = parse_triage(response)
        if needs_review is not None:
            logger.info("filename: %s, triage: %s", filename, "NEEDS_REVIEW" if needs_review else "APPROVED")
            return FileSummary(filename=filename, summary=summary, needs_review=needs_review)

    return FileSummary(filename=filename, summary=response, needs_review=True)
