"""Per-connection identifiers for log correlation."""

import logging
import uuid
from typing import Any, MutableMapping, Optional

LOGGER_PREFIX = "hello_server."


def generate_connection_id() -> str:
    """Generate a short random connection ID."""
    return uuid.uuid4().hex[:12]


class ConnectionLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the connection ID and component into log records."""

    def __init__(self, logger: logging.Logger, connection_id: Optional[str] = None):
        super().__init__(logger, {})
        self.connection_id = connection_id

    def bind(self, connection_id: str) -> "ConnectionLoggerAdapter":
        """Return an adapter for the same logger tagged with ``connection_id``."""
        return ConnectionLoggerAdapter(self.logger, connection_id)

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        """Add connection_id and component to the extra dict."""
        if "extra" not in kwargs:
            kwargs["extra"] = {}
        else:
            kwargs["extra"] = dict(kwargs["extra"])

        kwargs["extra"]["connection_id"] = (
            self.connection_id if self.connection_id is not None else "-"
        )

        logger_name = self.logger.name
        if logger_name.startswith(LOGGER_PREFIX):
            component = logger_name[len(LOGGER_PREFIX) :]
        else:
            component = logger_name
        kwargs["extra"]["component"] = component

        return msg, kwargs
