"""Durable Redis job queue and the worker that drains it.

Pending jobs sit in a Redis list. A worker moves each job atomically into
its own processing list (BLMOVE) and removes it only once the job reached a
terminal state, so jobs held by a crashed worker are re-queued on restart.
"""

import asyncio
import json
from dataclasses import dataclass
from datetime import UTC, datetime

import redis.asyncio as redis
import structlog
from pydantic import ValidationError
from redis.asyncio.client import Pipeline
from redis.exceptions import LockError

from app.core.settings import QueueConfig
from app.schemas.job_schema import ChatJob, JobStatus
from app.services.chat_message_task import ProcessChatMessageJob

logger = structlog.get_logger()

JOB_STATUS_KEY = "chat_job:{job_id}"
CHAT_LOCK_KEY = "chat_lock:{chat_id}"


@dataclass(frozen=True)
class Delivery:
    """A dequeued job together with its raw payload, needed to acknowledge it."""

    job: ChatJob
    raw: str


class JobQueue:
    """Enqueue, dequeue and status bookkeeping for chat jobs."""

    def __init__(
        self, redis_client: redis.Redis, config: QueueConfig  # type: ignore[type-arg]
    ) -> None:
        self._redis = redis_client
        self._config = config

    def processing_key(self, worker_id: str) -> str:
        return f"{self._config.pending_key}:processing:{worker_id}"

    async def enqueue(self, job: ChatJob) -> str:
        """Push a job onto the pending list and record its initial status."""
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.lpush(self._config.pending_key, job.model_dump_json())
            self._status_commands(pipe, job)
            await pipe.execute()
        logger.info(
            "Job enqueued",
            job_id=job.job_id,
            chat_id=job.chat_id,
            message_id=job.correlation_id,
        )
        return job.job_id

    async def dequeue(self, worker_id: str, timeout: int) -> Delivery | None:
        """Block up to ``timeout`` seconds for the oldest pending job."""
        raw = await self._redis.blmove(
            self._config.pending_key,
            self.processing_key(worker_id),
            timeout,
            "RIGHT",
            "LEFT",
        )
        if raw is None:
            return None
        try:
            job = ChatJob.model_validate_json(raw)
        except ValidationError:
            logger.error("Discarding malformed job payload", payload=raw[:200])
            await self._redis.lrem(self.processing_key(worker_id), 1, raw)
            return None
        return Delivery(job=job, raw=raw)

    async def ack(self, worker_id: str, delivery: Delivery) -> None:
        """Drop a finished job from the worker's processing list."""
        await self._redis.lrem(self.processing_key(worker_id), 1, delivery.raw)

    async def recover(self, worker_id: str) -> int:
        """Re-queue jobs left in this worker's processing list by a crash."""
        recovered = 0
        # Newest first onto the consuming end, so the oldest job runs next.
        while await self._redis.lmove(
            self.processing_key(worker_id), self._config.pending_key, "LEFT", "RIGHT"
        ):
            recovered += 1
        if recovered:
            logger.warning(
                "Recovered unfinished jobs", worker_id=worker_id, count=recovered
            )
        return recovered

    async def mark(self, job: ChatJob, error: str | None = None) -> None:
        """Record a job's current status and attempt count."""
        async with self._redis.pipeline(transaction=True) as pipe:
            self._status_commands(pipe, job, error)
            await pipe.execute()

    async def record_failure(self, job: ChatJob, error: str) -> None:
        """Keep a terminally failed job for later inspection."""
        entry = job.model_dump(mode="json") | {
            "error": error,
            "failed_at": datetime.now(UTC).isoformat(),
        }
        await self._redis.lpush(self._config.failed_key, json.dumps(entry))
        logger.info("Job recorded as failed", job_id=job.job_id)

    async def get_status(self, job_id: str) -> dict[str, str] | None:
        """Latest recorded status of a job, or None once expired or unknown."""
        data = await self._redis.hgetall(JOB_STATUS_KEY.format(job_id=job_id))
        return data or None

    async def size(self) -> int:
        """Number of jobs waiting to be picked up."""
        return int(await self._redis.llen(self._config.pending_key))

    def _status_commands(
        self,
        pipe: Pipeline,
        job: ChatJob,
        error: str | None = None,
    ) -> None:
        key = JOB_STATUS_KEY.format(job_id=job.job_id)
        mapping = {
            "status": job.status.value,
            "attempt": job.attempt,
            "max_attempts": job.max_attempts,
            "user_id": job.user_id,
            "chat_id": job.chat_id,
            "message_id": job.correlation_id,
            "updated_at": datetime.now(UTC).isoformat(),
        }
        if error is not None:
            mapping["error"] = error
        pipe.hset(key, mapping=mapping)
        pipe.expire(key, self._config.status_ttl_seconds)


class ChatJobWorker:
    """Pulls jobs from the queue and runs them with retries.

    Jobs for different chats run concurrently up to ``config.concurrency``.
    Jobs for the same chat are serialized by a Redis lock held across all
    attempts of a job, so bot replies are stored in the order of the user
    messages they answer.
    """

    def __init__(
        self,
        queue: JobQueue,
        task: ProcessChatMessageJob,
        redis_client: redis.Redis,  # type: ignore[type-arg]
        config: QueueConfig,
        worker_id: str | None = None,
    ) -> None:
        self._queue = queue
        self._task = task
        self._redis = redis_client
        self._config = config
        self.worker_id = worker_id or config.worker_id
        self._slots = asyncio.Semaphore(config.concurrency)
        self._running: set[asyncio.Task[None]] = set()

    async def run(self, stop_event: asyncio.Event) -> None:
        """Process jobs until ``stop_event`` is set, then drain in-flight ones."""
        await self._queue.recover(self.worker_id)
        logger.info(
            "Worker started",
            worker_id=self.worker_id,
            queue=self._config.pending_key,
            concurrency=self._config.concurrency,
        )
        while not stop_event.is_set():
            await self._slots.acquire()
            try:
                delivery = await self._queue.dequeue(
                    self.worker_id, self._config.poll_timeout_seconds
                )
            except Exception:
                self._slots.release()
                raise
            if delivery is None:
                self._slots.release()
                continue
            task = asyncio.create_task(self._handle(delivery))
            self._running.add(task)
            task.add_done_callback(self._running.discard)

        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)
        logger.info("Worker stopped", worker_id=self.worker_id)

    async def process(self, job: ChatJob) -> JobStatus:
        """Run a job to a terminal state while holding its chat's lock."""
        lock = self._redis.lock(
            CHAT_LOCK_KEY.format(chat_id=job.chat_id),
            timeout=self._config.chat_lock_timeout_seconds,
        )
        await lock.acquire()
        try:
            return await self._attempt_until_done(job)
        finally:
            try:
                await lock.release()
            except LockError:
                # Expired mid-job; the terminal state still stands and gets acked.
                logger.warning(
                    "Chat lock expired before release",
                    job_id=job.job_id,
                    chat_id=job.chat_id,
                )

    async def _attempt_until_done(self, job: ChatJob) -> JobStatus:
        while True:
            job = job.model_copy(
                update={"attempt": job.attempt + 1, "status": JobStatus.RUNNING}
            )
            await self._queue.mark(job)
            try:
                await self._task.run(job)
            except Exception as exc:
                if job.is_last_attempt():
                    job = job.model_copy(update={"status": JobStatus.FAILED})
                    await self._queue.mark(job, error=type(exc).__name__)
                    await self._queue.record_failure(job, str(exc))
                    await self._task.failed(job, exc)
                    return JobStatus.FAILED
                job = job.model_copy(update={"status": JobStatus.RETRYING})
                await self._queue.mark(job, error=type(exc).__name__)
                delay = self._config.retry_backoff_seconds * job.attempt
                logger.info(
                    "Retrying chat job",
                    job_id=job.job_id,
                    next_attempt=job.attempt + 1,
                    delay=delay,
                )
                await asyncio.sleep(delay)
            else:
                job = job.model_copy(update={"status": JobStatus.SUCCEEDED})
                await self._queue.mark(job)
                logger.info(
                    "Chat job succeeded", job_id=job.job_id, attempts=job.attempt
                )
                return JobStatus.SUCCEEDED

    async def _handle(self, delivery: Delivery) -> None:
        try:
            await self.process(delivery.job)
            await self._queue.ack(self.worker_id, delivery)
        except Exception:
            logger.exception(
                "Chat job left unacknowledged",
                job_id=delivery.job.job_id,
                worker_id=self.worker_id,
            )
        finally:
            self._slots.release()
