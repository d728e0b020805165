from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class RepositoryRef(BaseModel):
    """
    Immutable reference to a repository owned by the authenticated user,
    as returned by the repository listing.
    """
    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., description="Login name of the repository owner")
    name: str = Field(..., description="Name of the repository")
    archived: bool = Field(False, description="Archived repositories are read-only and never mutated")
    default_branch: str = Field("main", description="Branch whose tree is scanned")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


class TreeEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Path relative to the repository root")
    type: str = Field(..., description="'blob' for files, 'tree' or 'commit' otherwise")

    @property
    def is_blob(self) -> bool:
        return self.type == "blob"


class FileContent(BaseModel):
    """Decoded text of a single file plus the sha needed to update it."""
    model_config = ConfigDict(frozen=True)

    path: str
    content: str
    sha: str = Field(..., description="Blob sha, used as the optimistic-concurrency precondition")
    encoding: str = "base64"


class ReplacementResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    new_content: str
    count: int = Field(..., ge=0)


class PendingEdit(BaseModel):
    """An edit staged in memory until the repository is committed."""
    model_config = ConfigDict(frozen=True)

    path: str
    sha: str
    new_content: str
    count: int = Field(..., ge=1)


class CommitRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    sha: str
    message: str = ""
    html_url: Optional[str] = None


class RepositoryOutcome(str, Enum):
    ARCHIVED = "archived"
    NO_ELIGIBLE_FILES = "no_eligible_files"
    NO_CHANGES = "no_changes"
    DRY_RUN = "dry_run"
    COMMITTED = "committed"
    FAILED = "failed"

    @property
    def bucket(self) -> str:
        """Name of the RunStats counter this outcome increments."""
        if self in (RepositoryOutcome.DRY_RUN, RepositoryOutcome.COMMITTED):
            return "updated"
        if self is RepositoryOutcome.FAILED:
            return "failed"
        return "skipped"


class RepositoryReport(BaseModel):
    """
    Final result of processing one repository. Built once the processor
    reaches a terminal state, then folded into RunStats.
    """
    model_config = ConfigDict(frozen=True)

    full_name: str
    outcome: RepositoryOutcome
    files_changed: int = Field(0, ge=0)
    replacements: int = Field(0, ge=0)
    files_skipped: int = Field(0, ge=0)
    file_errors: int = Field(0, ge=0)
    error: Optional[str] = None


class RunStats(BaseModel):
    """Run-wide counters. Every repository lands in exactly one of updated/skipped/failed."""

    total_repos: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    files_changed: int = 0
    total_replacements: int = 0

    def record(self, report: RepositoryReport) -> None:
        bucket = report.outcome.bucket
        setattr(self, bucket, getattr(self, bucket) + 1)
        self.files_changed += report.files_changed
        self.total_replacements += report.replacements
