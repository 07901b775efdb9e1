"""
OutboxRelay: publishes queued order events until the broker acknowledges them.

Records are relayed strictly in outbox order. A record that fails to publish
stays pending (its attempt count and last error are stored) and the pass
stops there, so later events never overtake it; the next pass retries it.
"""

from __future__ import annotations

import asyncio
import logging

from broker.publisher import Publisher
from order_service import storage
from order_service.config import OUTBOX_BATCH_SIZE, OUTBOX_POLL_INTERVAL

logger = logging.getLogger(__name__)


class OutboxRelay:
    def __init__(
        self,
        db_path: str,
        publisher: Publisher,
        poll_interval: float = OUTBOX_POLL_INTERVAL,
        batch_size: int = OUTBOX_BATCH_SIZE,
    ) -> None:
        self._db_path = db_path
        self._publisher = publisher
        self._poll_interval = poll_interval
        self._batch_size = batch_size
        self._lock = asyncio.Lock()
        self._stopping = asyncio.Event()

    async def flush(self) -> int:
        """Publish pending records in order; returns how many were acknowledged."""
        async with self._lock:
            published = 0
            for record in storage.pending_outbox(self._db_path, limit=self._batch_size):
                try:
                    acknowledged = await self._publisher.publish(record.envelope, record.topic)
                except Exception as exc:
                    storage.mark_outbox_failed(self._db_path, record.event_id, repr(exc))
                    logger.warning(
                        "Outbox publish of %s (%s) failed on attempt %d: %r",
                        record.event_id,
                        record.envelope.event.value,
                        record.attempts + 1,
                        exc,
                    )
                    break
                if not acknowledged:
                    storage.mark_outbox_failed(self._db_path, record.event_id, "not acknowledged")
                    logger.warning("Outbox publish of %s was not acknowledged", record.event_id)
                    break
                storage.mark_outbox_published(self._db_path, record.event_id)
                published += 1
            if published:
                logger.info("Outbox relayed %d event(s)", published)
            return published

    async def run(self) -> None:
        logger.info("Outbox relay started (every %.1fs)", self._poll_interval)
        while not self._stopping.is_set():
            try:
                await self.flush()
            except Exception:
                logger.exception("Outbox pass failed; retrying in %.1fs", self._poll_interval)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Outbox relay stopped")

    def stop(self) -> None:
        self._stopping.set()
