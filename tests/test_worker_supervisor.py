import asyncio

from ticket_notifications import __main__ as app_main
from ticket_notifications.queue.client import QueueError, QueueType
from ticket_notifications.worker.queue_processor import QueueBatchResult


class StubProcessor:
    def __init__(self) -> None:
        self.calls: list[QueueType] = []

    async def process_queue(self, queue_type: QueueType) -> QueueBatchResult:
        self.calls.append(queue_type)
        if queue_type == QueueType.RESERVATIONS:
            raise QueueError("Failed to receive messages (queue 'reservation-notifications')")
        return QueueBatchResult(queue_type=queue_type, received=2, processed=1, failed=1)


def test_worker_tick_visits_every_queue_and_isolates_errors() -> None:
    processor = StubProcessor()

    payload = asyncio.run(app_main.run_worker_tick(processor))

    assert processor.calls == [QueueType.EVENTS, QueueType.RESERVATIONS, QueueType.REMINDERS]
    assert payload["received"] == 4
    assert payload["processed"] == 2
    assert payload["failed"] == 2
    assert payload["errors"] == 1
    assert payload["mode"] == "worker"
