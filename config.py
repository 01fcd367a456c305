import os
import re
from enum import Enum
from functools import lru_cache
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

# Comments containing one of these are dropped unless REVIEW_COMMENT_LGTM is set.
DEFAULT_SKIP_PHRASES: Tuple[str, ...] = (
    # praise
    "LGTM",
    "looks good to me",
    "問題ありません。",
    "問題はありません。",
    "問題は見受けられません。",
    "変更も適切です。",
    "変更は適切です。",
    "適切な変更です。",
    "この変更は推奨されます。",
    "良い変更です。",
    "必要な修正です。",
    "必要な変更です。",
    "改善です。",
    "コードの可読性を向上させます。",
    "機能が強化されます。",
    # vague
    "確認してください。",
    "使用されていないようです。",
    # about commented-out code
    "コメントアウト",
    "具体的な実装がありません。",
    "実装がまだ完了していないようです。",
    "不要なインポート",
    # about missing docs
    "コメントがないようです。",
    "説明がありません。",
    "説明が不足しています。",
    "説明されていません。",
    "説明が必要です。",
)

DEFAULT_PATH_FILTERS = (
    "!**/*.lock",
    "!**/package-lock.json",
    "!**/*.min.js",
    "!**/*.svg",
    "!**/*.png",
    "!**/*.jpg",
    "!**/*.pb.go",
    "!dist/**",
)


class ReviewMode(str, Enum):
    BATCH = "batch"   # all hunks of a file packed into one request
    HUNK = "hunk"     # triage, review and validate each hunk on its own


class TokenLimits(BaseModel):
    max_tokens: int
    response_tokens: int

    @property
    def request_tokens(self) -> int:
        return self.max_tokens - self.response_tokens - 100


class PathFilter:
    """
    Glob rules; a leading "!" makes a rule exclusive. With inclusion rules
    present a path must match one of them, and it must match no exclusion.
    "*" does not cross "/" ("src/*.py" matches "src/a.py" only); use "**"
    to span directories.
    """

    def __init__(self, rules: Optional[List[str]] = None):
        self.rules: List[Tuple[str, bool]] = []
        for rule in rules or []:
            rule = rule.strip()
            if not rule:
                continue
            if rule.startswith("!"):
                self.rules.append((rule[1:].strip(), True))
            else:
                self.rules.append((rule, False))

    def check(self, path: str) -> bool:
        if not self.rules:
            return True

        included = False
        excluded = False
        has_inclusion = False
        for pattern, exclude in self.rules:
            if exclude:
                if _glob_match(path, pattern):
                    excluded = True
            else:
                has_inclusion = True
                if _glob_match(path, pattern):
                    included = True

        return (included or not has_inclusion) and not excluded


@lru_cache(maxsize=None)
def _glob_regex(pattern: str) -> "re.Pattern":
    # "*" and "?" stay inside one path segment; "**" spans segments and "**/" may match nothing
    parts = []
    i, n = 0, len(pattern)
    while i < n:
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        elif pattern[i] == "[" and pattern.find("]", i + 2) != -1:
            end = pattern.find("]", i + 2)
            body = pattern[i + 1:end].replace("\\", "\\\\")
            if body.startswith("!"):
                body = "^" + body[1:]
            parts.append(f"[{body}]")
            i = end + 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(parts) + r"\Z")


def _glob_match(path: str, pattern: str) -> bool:
    return _glob_regex(pattern).match(path) is not None


class Settings(BaseModel):
    github_token: Optional[str] = None
    gemini_api_key: Optional[str] = None

    light_model: str = "gemini-2.0-flash-lite"
    heavy_model: str = "gemini-2.0-flash"
    light_token_limits: TokenLimits = TokenLimits(max_tokens=32600, response_tokens=4000)
    heavy_token_limits: TokenLimits = TokenLimits(max_tokens=32600, response_tokens=4000)

    llm_concurrency_limit: int = 6
    github_concurrency_limit: int = 6
    max_files: int = 150

    review_mode: ReviewMode = ReviewMode.BATCH
    review_simple_changes: bool = False
    review_comment_lgtm: bool = False
    disable_review: bool = False
    disable_release_notes: bool = False

    path_filters: List[str] = Field(default_factory=lambda: list(DEFAULT_PATH_FILTERS))
    skip_phrases: List[str] = Field(default_factory=lambda: list(DEFAULT_SKIP_PHRASES))
    system_message: str = (
        "You are a highly experienced software engineer performing a pull request review. "
        "Focus on bugs, security issues, performance problems and clear maintainability issues. "
        "Do not comment on trivial style or formatting."
    )

    debug: bool = False
    log_level: str = "INFO"

    @property
    def path_filter(self) -> PathFilter:
        return PathFilter(self.path_filters)

    def is_skip_comment(self, text: str) -> bool:
        if self.review_comment_lgtm:
            return False
        return any(phrase in text for phrase in self.skip_phrases)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_list(name: str, separators: str = ",\n") -> Optional[List[str]]:
    value = os.getenv(name)
    if value is None:
        return None
    for sep in separators[1:]:
        value = value.replace(sep, separators[0])
    return [item.strip() for item in value.split(separators[0]) if item.strip()]


def load_settings() -> Settings:
    defaults = Settings()
    path_filters = _env_list("PATH_FILTERS")
    skip_phrases = _env_list("SKIP_PHRASES", separators="\n")

    return Settings(
        github_token=os.getenv("GITHUB_TOKEN"),
        gemini_api_key=os.getenv("GEMINI_API_KEY"),
        light_model=os.getenv("LIGHT_MODEL", defaults.light_model),
        heavy_model=os.getenv("HEAVY_MODEL", defaults.heavy_model),
        light_token_limits=TokenLimits(
            max_tokens=_env_int("LIGHT_MAX_TOKENS", defaults.light_token_limits.max_tokens),
            response_tokens=_env_int("LIGHT_RESPONSE_TOKENS", defaults.light_token_limits.response_tokens),
        ),
        heavy_token_limits=TokenLimits(
            max_tokens=_env_int("HEAVY_MAX_TOKENS", defaults.heavy_token_limits.max_tokens),
            response_tokens=_env_int("HEAVY_RESPONSE_TOKENS", defaults.heavy_token_limits.response_tokens),
        ),
        llm_concurrency_limit=_env_int("LLM_CONCURRENCY_LIMIT", defaults.llm_concurrency_limit),
        github_concurrency_limit=_env_int("GITHUB_CONCURRENCY_LIMIT", defaults.github_concurrency_limit),
        max_files=_env_int("MAX_FILES", defaults.max_files),
        review_mode=ReviewMode(os.getenv("REVIEW_MODE", defaults.review_mode.value).strip().lower()),
        review_simple_changes=_env_bool("REVIEW_SIMPLE_CHANGES", defaults.review_simple_changes),
        review_comment_lgtm=_env_bool("REVIEW_COMMENT_LGTM", defaults.review_comment_lgtm),
        disable_review=_env_bool("DISABLE_REVIEW", defaults.disable_review),
        disable_release_notes=_env_bool("DISABLE_RELEASE_NOTES", defaults.disable_release_notes),
        path_filters=path_filters if path_filters is not None else defaults.path_filters,
        skip_phrases=skip_phrases if skip_phrases is not None else defaults.skip_phrases,
        system_message=os.getenv("SYSTEM_MESSAGE", defaults.system_message),
        debug=_env_bool("DEBUG", defaults.debug),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
    )
