import json
import logging
import random
from datetime import datetime, timezone

# LogRecord attributes that are never copied into the JSON payload.
RESERVED_ATTRS = frozenset(
    (
        "msg",
        "args",
        "levelname",
        "levelno",
        "name",
        "created",
        "msecs",
        "relativeCreated",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "exc_info",
        "exc_text",
        "stack_info",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
    )
)


class JsonFormatter(logging.Formatter):
    """JSON formatter for production logs.

    - Base fields are time (ISO-8601 UTC), level, logger name and message.
    - Attributes passed via `extra` (event, cart_id, order_id, ...) are merged
      in; values that are not JSON-serializable (Decimal, datetime) are
      rendered with `str`.
    - Exceptions logged with `logger.exception` land under `exc_info`.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in RESERVED_ATTRS or key.startswith("_"):
                continue
            payload.setdefault(key, value)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class SamplingFilter(logging.Filter):
    """Probabilistically drop logs to reduce noise while keeping signal.

    - `rate`: float in [0.0, 1.0]; fraction of matching records to allow.
    - `levels`: level names sampling applies to (e.g., ["INFO"]).
    - `allow_events`: event names that are never sampled. A record matches
      on either its message or its `event` extra.
    """

    def __init__(self, rate: float = 1.0, levels: list[str] | None = None, allow_events: list[str] | None = None):
        super().__init__()
        try:
            self.rate = float(rate)
        except (TypeError, ValueError):
            self.rate = 1.0
        self.levels = set(levels or ["INFO"])
        self.allow_events = set(allow_events or [])

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if record.levelname not in self.levels:
            return True
        if record.msg in self.allow_events or getattr(record, "event", None) in self.allow_events:
            return True
        if self.rate >= 1.0:
            return True
        if self.rate <= 0.0:
            return False
        return random.random() < self.rate
