# agents/writer_agent.py
import logging
from typing import List, Optional

from models import FileSummary
from prompts import Inputs, SUMMARIZE, SUMMARIZE_CHANGESETS, SUMMARIZE_RELEASE_NOTES, SUMMARIZE_SHORT
from utils.commenter import (
    RAW_SUMMARY_END_TAG,
    RAW_SUMMARY_START_TAG,
    SHORT_SUMMARY_END_TAG,
    SHORT_SUMMARY_START_TAG,
)

logger = logging.getLogger(__name__)

BATCH_SIZE = 10


async def _safe_chat(bot, prompt: str, what: str) -> str:
    try:
        response = await bot.chat(prompt)
    except Exception as e:
        logger.warning("%s: error from model: %s", what, e)
        return ""
    if not response:
        logger.info("%s: nothing obtained from model", what)
    return response


async def rollup_summaries(summaries: List[FileSummary], inputs: Inputs, bot) -> str:
    """
    Fold per-file summaries into `inputs.raw_summary`, BATCH_SIZE at a time,
    letting the model regroup the changesets after each batch. Batches are
    taken in the order given.
    """
    for i in range(0, len(summaries), BATCH_SIZE):
        for s in summaries[i:i + BATCH_SIZE]:
            inputs.raw_summary += f"---\n{s.filename}: {s.summary}\n"
        response = await _safe_chat(bot, inputs.render(SUMMARIZE_CHANGESETS), "summarize changesets")
        if response:
            inputs.raw_summary = response
    return inputs.raw_summary


async def write_summary(inputs: Inputs, bot, commenter=None, release_notes: bool = True) -> str:
    """
    Produce the final summary, optionally put release notes into the PR
    description, and refresh `inputs.short_summary`. Returns the final summary.
    """
    final = await _safe_chat(bot, inputs.render(SUMMARIZE), "summarize")

    if release_notes and commenter is not None:
        notes = await _safe_chat(bot, inputs.render(SUMMARIZE_RELEASE_NOTES), "release notes")
        if notes:
            try:
                await commenter.update_description("### Summary by PR Review Agent\n\n" + notes)
            except Exception as e:
                logger.warning("release notes: error from github: %s", e)

    short = await _safe_chat(bot, inputs.render(SUMMARIZE_SHORT), "short summary")
    if short:
        inputs.short_summary = short
    return final


def compose_summary_comment(final_summary: str, raw_summary: str, short_summary: str,
                            commit_ids_block: Optional[str] = None) -> str:
    comment = (
        f"{final_summary}\n"
        f"{RAW_SUMMARY_START_TAG}"
        f"{raw_summary}\n"
        f"{RAW_SUMMARY_END_TAG}\n"
        f"{SHORT_SUMMARY_START_TAG}"
        f"{short_summary}\n"
        f"{SHORT_SUMMARY_END_TAG}\n"
        "\n---\n\n"
    )
    if commit_ids_block:
        comment += f"\n{commit_ids_block}"
    return comment
