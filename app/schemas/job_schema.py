"""Queued job records."""

import enum
import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field


class JobStatus(enum.StrEnum):
    """Processing job lifecycle."""

    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ChatJob(BaseModel):
    """Deferred bot-response generation for one user message."""

    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: int
    chat_id: int
    message: str
    correlation_id: int
    attempt: int = 0
    max_attempts: int = 3
    timeout_seconds: float = 120.0
    status: JobStatus = JobStatus.PENDING
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def is_last_attempt(self) -> bool:
        """Whether the attempt currently running is the final one."""
        return self.attempt >= self.max_attempts
