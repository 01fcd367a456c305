import logging
from typing import Callable, NamedTuple, Optional, Sequence

from models import PatchUnit

logger = logging.getLogger(__name__)

END_OF_UNIT = "\n---end_change_section---\n"


class PackResult(NamedTuple):
    packed_count: int
    text: str


def render_context(context: str) -> str:
    return f"\n---comment_chains---\n```\n{context}\n```\n"


def pack_patches(
    units: Sequence[PatchUnit],
    existing_tokens: int,
    budget: int,
    token_counter: Callable[[str], int],
    context_for: Optional[Callable[[PatchUnit], str]] = None,
) -> PackResult:
    """
    Greedily fit units, in order, into `budget` tokens on top of `existing_tokens`.

    Packing stops at the first unit that does not fit; it and everything after it
    are left out. A unit's context block (prior comment chain) is only added when
    it also fits, otherwise the unit goes in without it.
    """
    tokens = existing_tokens
    parts = []
    packed = 0

    for unit in units:
        cost = token_counter(unit.content)
        if tokens + cost > budget:
            logger.info(
                "only packing %d / %d patches, tokens: %d / %d",
                packed, len(units), tokens, budget,
            )
            break
        tokens += cost
        packed += 1

        section = f"\n{unit.content}\n"
        context = context_for(unit) if context_for else ""
        if context:
            block = render_context(context)
            block_tokens = token_counter(block)
            if tokens + block_tokens <= budget:
                tokens += block_tokens
                section += block
            else:
                logger.debug("dropping comment chain for %d-%d, over budget", unit.start_line, unit.end_line)
        parts.append(section + END_OF_UNIT)

    return PackResult(packed, "".join(parts))
