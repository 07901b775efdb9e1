"""
Logging setup shared by the catalog and order services and their consumers.

Stdlib logging to stdout, one line per record, tagged with the service name.
The level comes from LOG_LEVEL (default INFO); the chatty Kafka client
loggers are held at WARNING unless LOG_LEVEL is DEBUG.
"""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(service_name)s %(name)s %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_CLIENT_LOGGERS = ("aiokafka", "kafka")


class ServiceNameFilter(logging.Filter):
    """Tags records with the service name unless the call site set one via extra=."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "service_name"):
            record.service_name = self.service_name
        return True


def setup_logging(service_name: str, level: str | None = None) -> None:
    """
    Configure the root logger for a service process.

    Safe to call more than once: the existing stdout handler is retagged
    rather than a second one added.

    >>> setup_logging("catalog-service", level="info")
    >>> logging.getLogger().level == logging.INFO
    True
    >>> logging.getLogger("aiokafka").level == logging.WARNING
    True
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root = logging.getLogger()
    root.setLevel(level_name)

    if not root.handlers:
        root.addHandler(logging.StreamHandler(sys.stdout))
    for handler in root.handlers:
        for old in [f for f in handler.filters if isinstance(f, ServiceNameFilter)]:
            handler.removeFilter(old)
        handler.addFilter(ServiceNameFilter(service_name))
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    client_level = logging.DEBUG if level_name == "DEBUG" else logging.WARNING
    for name in _CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(client_level)
