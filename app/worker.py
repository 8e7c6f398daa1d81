"""Queue worker process: ``python -m app.worker``."""

import asyncio
import signal

import structlog

from app.core.config import settings
from app.core.database import engine
from app.core.logging import configure_logging
from app.core.redis import close_redis, init_redis
from app.dependencies import build_chat_message_job, build_http_client
from app.services.job_queue import ChatJobWorker, JobQueue

logger = structlog.get_logger()


async def run_worker() -> None:
    """Drain the chat job queue until SIGINT or SIGTERM."""
    configure_logging()
    redis_client = await init_redis()
    http_client = build_http_client()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    worker = ChatJobWorker(
        queue=JobQueue(redis_client, settings.queue),
        task=build_chat_message_job(http_client, redis_client),
        redis_client=redis_client,
        config=settings.queue,
    )
    try:
        await worker.run(stop_event)
    finally:
        await http_client.aclose()
        await close_redis()
        await engine.dispose()


def main() -> None:
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
