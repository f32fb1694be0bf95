from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import uvicorn

from ticket_notifications.core.logging import configure_logging, get_logger
from ticket_notifications.core.settings import get_settings
from ticket_notifications.dependencies import get_queue_processor
from ticket_notifications.queue.client import QueueType
from ticket_notifications.worker.queue_processor import QueueProcessor
from ticket_notifications.worker.retry import sanitize_error

logger = get_logger("worker.supervisor")


def _now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


async def run_worker_tick(processor: QueueProcessor) -> dict[str, object]:
    """Drain one batch from every queue; a failing queue does not stop the others."""
    tick_started_at = _now_iso()
    errors = 0
    received = 0
    processed = 0
    failed = 0
    dead_lettered = 0

    for queue_type in QueueType:
        try:
            result = await processor.process_queue(queue_type)
        except Exception as exc:
            errors += 1
            logger.error(
                "worker.tick_process_queue_error",
                extra={
                    "component": "worker",
                    "queue": queue_type.value,
                    "error": sanitize_error(exc, default_message="worker error"),
                },
            )
            continue
        received += result.received
        processed += result.processed
        failed += result.failed
        dead_lettered += result.dead_lettered

    payload: dict[str, object] = {
        "mode": "worker",
        "tick_started_at": tick_started_at,
        "tick_finished_at": _now_iso(),
        "received": received,
        "processed": processed,
        "failed": failed,
        "dead_lettered": dead_lettered,
        "errors": errors,
    }
    if received or errors:
        logger.info("worker.tick_completed", extra={"component": "worker", **payload})
    return payload


async def run_worker_supervisor_loop() -> None:
    settings = get_settings()
    processor = get_queue_processor()
    logger.info(
        "worker.started",
        extra={
            "component": "worker",
            "queues": [queue_type.value for queue_type in QueueType],
            "dead_letter_enabled": settings.QUEUE_MAX_RECEIVE_COUNT > 0,
        },
    )

    while True:
        payload = await run_worker_tick(processor)
        if int(payload.get("received") or 0) == 0:
            await asyncio.sleep(max(1, settings.WORKER_POLL_INTERVAL_SECONDS))


def main() -> None:
    configure_logging()
    settings = get_settings()
    mode = settings.NOTIFY_MODE.strip().lower()

    if mode == "worker":
        asyncio.run(run_worker_supervisor_loop())
        return

    uvicorn.run("ticket_notifications.main:app", host=settings.API_HOST, port=settings.API_PORT)


if __name__ == "__main__":
    main()
