import asyncio
import logging
import os
from functools import lru_cache
from typing import Callable, List

import httpx
from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from unidiff.errors import UnidiffParseError
from dotenv import load_dotenv

load_dotenv()

from agents.llm_client import GeminiBot
from agents.review_agent import review_file
from config import Settings, load_settings
from diff_parser import build_patch_units, parse_unified_diff
from models import FileComment, PullRequestInfo, ReviewReport, ReviewResponse
from pipeline import ReviewPipeline
from prompts import Inputs
from utils.commenter import Commenter
from utils.github_client import GitHubClient
from utils.tokenizer import get_token_count

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="PR Review Agent (GitHub-enabled)")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class PRInput(BaseModel):
    owner: str
    repo: str
    pr_number: int


@lru_cache
def get_settings() -> Settings:
    return load_settings()


@lru_cache
def get_light_bot():
    settings = get_settings()
    return GeminiBot(
        settings.light_model,
        max_tokens=settings.light_token_limits.response_tokens,
        system_message=settings.system_message,
        api_key=settings.gemini_api_key,
    )


@lru_cache
def get_heavy_bot():
    settings = get_settings()
    return GeminiBot(
        settings.heavy_model,
        max_tokens=settings.heavy_token_limits.response_tokens,
        system_message=settings.system_message,
        api_key=settings.gemini_api_key,
    )


def get_token_counter() -> Callable[[str], int]:
    return get_token_count


def get_github_factory() -> Callable[[str, str], GitHubClient]:
    settings = get_settings()
    return lambda owner, repo: GitHubClient(owner, repo, token=settings.github_token)


@app.post("/review-diff", response_model=ReviewResponse, summary="Review a unified diff (plain text)")
async def review_diff(
    diff_text: str = Body(..., media_type="text/plain", description="Paste the full unified diff here (plain text)."),
    settings: Settings = Depends(get_settings),
    heavy_bot=Depends(get_heavy_bot),
    token_counter=Depends(get_token_counter),
):
    try:
        files = parse_unified_diff(diff_text)
    except UnidiffParseError as e:
        raise HTTPException(status_code=400, detail=f"Could not parse diff: {e}")

    units_by_file = [(f.filename, build_patch_units(f.patch)) for f in files]
    units_by_file = [(name, units) for name, units in units_by_file if units]
    if not units_by_file:
        raise HTTPException(status_code=400, detail="No hunks parsed from diff")

    inputs = Inputs(system_message=settings.system_message)
    limit = asyncio.Semaphore(settings.llm_concurrency_limit)
    errors: List[str] = []

    async def review(filename, units):
        async with limit:
            try:
                outcome = await review_file(
                    filename, units, inputs, heavy_bot,
                    settings.heavy_token_limits.request_tokens, token_counter,
                )
            except Exception as e:
                logger.warning("Failed to review %s: %s", filename, e)
                errors.append(f"{filename} ({e})")
                return []
        return [
            FileComment(file=filename, start_line=c.start_line, end_line=c.end_line, comment=c.text)
            for c in outcome.comments
            if not settings.is_skip_comment(c.text)
        ]

    results = await asyncio.gather(*(review(name, units) for name, units in units_by_file))
    comments = [c for file_comments in results for c in file_comments]

    summary = f"{len(comments)} comments generated for {len(units_by_file)} files"
    if errors:
        summary += f"; failed: {', '.join(errors)}"
    return ReviewResponse(review_summary=summary, comments=comments)


@app.post("/review-pr", response_model=ReviewReport, summary="Review a GitHub PR incrementally and post the results")
async def review_pr(
    inp: PRInput,
    settings: Settings = Depends(get_settings),
    light_bot=Depends(get_light_bot),
    heavy_bot=Depends(get_heavy_bot),
    token_counter=Depends(get_token_counter),
    github_factory=Depends(get_github_factory),
):
    github = github_factory(inp.owner, inp.repo)
    try:
        pr = await github.get_pull_request(inp.pr_number)
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 404:
            raise HTTPException(status_code=404, detail="PR not found")
        raise HTTPException(status_code=502, detail=f"Failed to fetch PR metadata from GitHub: {e}")
    except httpx.HTTPError as e:
        raise HTTPException(status_code=502, detail=f"Failed to fetch PR metadata from GitHub: {e}")

    pr_info = PullRequestInfo(
        number=inp.pr_number,
        title=pr.get("title") or "",
        body=pr.get("body"),
        base_sha=pr["base"]["sha"],
        head_sha=pr["head"]["sha"],
    )
    pipeline = ReviewPipeline(
        github, Commenter(github, inp.pr_number), light_bot, heavy_bot, settings, token_counter,
    )
    try:
        return await pipeline.run(pr_info)
    except httpx.HTTPError as e:
        raise HTTPException(status_code=502, detail=f"GitHub request failed during review: {e}")


@app.get("/")
def root(settings: Settings = Depends(get_settings)):
    return {
        "status": "PR Review Agent running",
        "git_integration": bool(settings.github_token),
        "review_mode": settings.review_mode.value,
    }
