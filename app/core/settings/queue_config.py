"""Background job queue configuration."""

from typing import Self

from pydantic import BaseModel, model_validator


class QueueConfig(BaseModel, frozen=True):
    """Redis-backed job queue and worker settings."""

    name: str
    worker_id: str
    max_attempts: int
    job_timeout_seconds: float
    retry_backoff_seconds: float
    poll_timeout_seconds: int
    concurrency: int
    chat_lock_timeout_seconds: float
    status_ttl_seconds: int

    @model_validator(mode="after")
    def lock_outlives_job(self) -> Self:
        """The per-chat lock must not expire while a job can still be running."""
        if self.chat_lock_timeout_seconds <= self.worst_case_job_seconds:
            raise ValueError(
                "chat_lock_timeout_seconds must exceed "
                f"{self.worst_case_job_seconds}s (all attempts plus backoff)"
            )
        return self

    @property
    def worst_case_job_seconds(self) -> float:
        """Longest a job can run: every attempt timing out plus retry backoff."""
        backoff = self.retry_backoff_seconds * sum(range(1, self.max_attempts))
        return self.max_attempts * self.job_timeout_seconds + backoff

    @property
    def pending_key(self) -> str:
        """Redis list holding pending jobs."""
        return f"chat_jobs:{self.name}"

    @property
    def failed_key(self) -> str:
        """Redis list holding terminally failed jobs."""
        return f"chat_jobs:{self.name}:failed"
