"""
Process entrypoint helpers for consumer workers.

serve() runs one subscription until SIGINT/SIGTERM asks it to stop; run_worker()
is the process boundary: anything that escapes is logged and the process exits
with status 1 so the supervisor restarts it.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Awaitable, Callable

from broker.connection import BrokerConnectionManager
from broker.publisher import Publisher
from broker.subscriber import Handler, Subscriber

logger = logging.getLogger(__name__)


async def serve(connections: BrokerConnectionManager, handler: Handler, topic: str) -> None:
    subscriber = Subscriber(connections, publisher=Publisher(connections))
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, subscriber.stop)
    try:
        await subscriber.subscribe(handler, topic)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await connections.close()


def run_worker(name: str, main: Callable[[], Awaitable[None]]) -> None:
    try:
        asyncio.run(main())
    except Exception:
        logger.exception("%s crashed", name)
        sys.exit(1)
    logger.info("%s stopped", name)
