from pydantic import BaseModel, Field, model_validator
from typing import List, Optional


class Hunk(BaseModel):
    old_start: int
    old_len: int
    new_start: int
    new_len: int
    raw_body: str = ""

    @property
    def old_end(self) -> int:
        return self.old_start + self.old_len - 1

    @property
    def new_end(self) -> int:
        return self.new_start + self.new_len - 1


class AnnotatedHunk(BaseModel):
    old_view: str
    new_view: str


class PatchUnit(BaseModel):
    """One reviewable slice of a file diff, addressed by new-file line numbers."""
    start_line: int
    end_line: int
    content: str

    @model_validator(mode="after")
    def _check_range(self):
        if self.start_line > self.end_line:
            raise ValueError(f"start_line {self.start_line} > end_line {self.end_line}")
        return self


class ReviewComment(BaseModel):
    start_line: int
    end_line: int
    text: str


class FileComment(BaseModel):
    file: str
    start_line: int
    end_line: int
    comment: str


class CommitRange(BaseModel):
    base_sha: str
    head_sha: str
    reviewed_commit_ids: List[str] = Field(default_factory=list)


class ChangedFile(BaseModel):
    filename: str
    status: str = "modified"
    patch: Optional[str] = None


class FileChangeSet(BaseModel):
    filename: str
    base_file_content: str = ""
    full_diff_text: str = ""
    patch_units: List[PatchUnit] = Field(default_factory=list)


class FileSummary(BaseModel):
    filename: str
    summary: str
    needs_review: bool = True


class PullRequestInfo(BaseModel):
    number: int
    title: str = ""
    body: Optional[str] = None
    base_sha: str
    head_sha: str


class ReviewReport(BaseModel):
    status: str = "completed"
    reason: Optional[str] = None
    reviewed_files: List[str] = Field(default_factory=list)
    skipped_files: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    comments: List[FileComment] = Field(default_factory=list)
    summary: str = ""


class ReviewResponse(BaseModel):
    review_summary: str
    comments: List[FileComment]


class BufferedComment(BaseModel):
    path: str
    start_line: int
    end_line: int
    message: str
