# deployer/models.py
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Attachment(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    url: str


class TaskDescriptor(BaseModel):
    """Validated task request handed to the queue. The secret never gets this far."""

    model_config = ConfigDict(frozen=True)

    email: str
    task: str
    round: int = Field(..., ge=1, le=2)
    nonce: str
    brief: str = ""
    evaluation_url: Optional[str] = None
    attachments: List[Attachment] = Field(default_factory=list)


class JobStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class Job(BaseModel):
    id: str
    descriptor: TaskDescriptor
    status: JobStatus = JobStatus.WAITING
    stage: str = "queued"
    progress: int = Field(default=0, ge=0, le=100)
    message: str = "Waiting to start..."
    repository_url: Optional[str] = Field(default=None, serialization_alias="repositoryUrl")
    pages_url: Optional[str] = Field(default=None, serialization_alias="pagesUrl")
    commit_sha: Optional[str] = Field(default=None, serialization_alias="commitSha")
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, serialization_alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, serialization_alias="updatedAt")


# fields a pipeline stage may fill in; never cleared once set
RESULT_FIELDS = ("repository_url", "pages_url", "commit_sha")


class QueueHealth(BaseModel):
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.waiting + self.active + self.completed + self.failed


class EvaluationPayload(BaseModel):
    email: str
    task: str
    round: int
    nonce: str
    repo_url: str
    commit_sha: str
    pages_url: str


class GeneratedContent(BaseModel):
    content: str
    description: str
