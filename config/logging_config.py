import json
import logging
import re
import sys
from datetime import datetime, timezone

from .settings import Settings, get_settings

# Extra fields copied from `logger.x(..., extra={...})` into JSON output.
_CONTEXT_FIELDS = (
    "automation_id",
    "execution_id",
    "event_id",
    "connector_id",
    "device_id",
    "action_type",
    "action_index",
    "tenant",
    "duration_ms",
)


class JsonFormatter(logging.Formatter):
    _redact_re = re.compile(r"(?i)\b(password|passwd|secret|token|api[_-]?key|authorization)\b\s*[:=]\s*([^\s,;]+)")

    @classmethod
    def _redact(cls, msg: str) -> str:
        return cls._redact_re.sub(lambda m: f"{m.group(1)}=********", msg)

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": self._redact(record.getMessage()),
        }
        for k in _CONTEXT_FIELDS:
            v = getattr(record, k, None)
            if v is not None:
                payload[k] = v
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    if settings.log_format == "text":
        formatter: logging.Formatter = logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    else:
        formatter = JsonFormatter()

    stream = logging.StreamHandler(sys.stdout)
    stream.setLevel(level)
    stream.setFormatter(formatter)
    root.handlers = [stream]

    # Dead-lettered audit records must survive any level tuning of the root logger.
    logging.getLogger("audit.deadletter").setLevel(logging.WARNING)
