from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PENDING = "pending"
    LOADING = "loading"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)


ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.LOADING)


class JobKind(str, Enum):
    GPT_IMAGE_GENERATE = "gpt-image-1-generate"
    GPT_IMAGE_EDIT = "gpt-image-1-edit"
    NANO_BANANA_GENERATE = "nano-banana-generate"
    NANO_BANANA_EDIT = "nano-banana-edit"
    SORA_VIDEO = "sora-2-video"


class Job(BaseModel):
    job_id: str = Field(..., description="Unique job identifier (ULID)")
    user_id: str = Field(..., description="Owner user ID")
    kind: JobKind
    input: Dict[str, Any] = Field(default_factory=dict, description="Opaque processor input")
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(0, ge=0, le=100)
    result: Optional[Dict[str, Any]] = Field(None, description="Processor output, set once complete")
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def view(self) -> Dict[str, Any]:
        """
        Caller-facing representation of the job. The input payload is left out.
        """
        return {
            "id": self.job_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "progress": self.progress,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
