from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, DateTime, Index, JSON, String


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PullRequestBase(SQLModel):
    repo_owner: str
    repo_name: str
    number: int
    ref: str = ""
    sha: str
    labels: list[str] = Field(default_factory=list)
    build_status: Optional[str] = None
    build_conclusion: Optional[str] = None
    build_link: Optional[str] = None


class PullRequestORM(PullRequestBase, table=True):
    __tablename__ = "pull_request"
    __table_args__ = (
        Index("uq_pull_request", "repo_owner", "repo_name", "number", unique=True),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    labels: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class PullRequestRef(PullRequestBase):
    """Snapshot of a pull request handed to the orchestrator.

    Never mutated in place: refreshed copies come from the record store or
    from ``model_copy(update=...)``.
    """

    @property
    def full_name(self) -> str:
        return f"{self.repo_owner}/{self.repo_name}"

    @property
    def short_sha(self) -> str:
        return self.sha[0:7]


class InstallationRecordBase(SQLModel):
    repo_owner: str
    repo_name: str
    number: int
    installation_id: str


class InstallationRecordORM(InstallationRecordBase, table=True):
    __tablename__ = "installation_record"
    __table_args__ = (
        Index("uq_installation_record_pr", "repo_owner", "repo_name", "number", unique=True),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    installation_id: str = Field(sa_column=Column(String(), nullable=False, unique=True))
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class InstallationRecordRead(InstallationRecordBase):
    id: int
    created_at: datetime


class SpinWickRequest(PullRequestBase):
    size: Optional[str] = None


class WorkflowAccepted(SQLModel):
    action: str
    repo_owner: str
    repo_name: str
    number: int
