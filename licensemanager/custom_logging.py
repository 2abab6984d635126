import logging
import json
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional

# Context added to every JSON log line; the CLI fills in the command being run.
LOG_CONTEXT_HOLDER: Dict[str, Any] = {
    "app_id": "UNSET",
    "command": "N/A",
}

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class JsonFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON.

    Structured fields are passed with
    logger.info("...", extra={"custom_extra_fields": {"event_type": ..., "data": {...}}}).
    """

    def format(self, record: logging.LogRecord) -> str:
        log_output: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "lineno": record.lineno,
            "app_id": LOG_CONTEXT_HOLDER.get("app_id"),
            "command": LOG_CONTEXT_HOLDER.get("command"),
        }

        custom_extra = getattr(record, 'custom_extra_fields', None)
        if isinstance(custom_extra, dict):
            log_output["event_type"] = custom_extra.get("event_type", "UNSPECIFIED")
            data_field = custom_extra.get("data")
            if isinstance(data_field, dict):
                log_output["data"] = data_field
            elif data_field is not None:
                log_output["data"] = {"_raw": data_field}

        if record.exc_info:
            if not isinstance(log_output.get("data"), dict):
                log_output["data"] = {}
            log_output["data"]["exception_traceback"] = self.formatException(record.exc_info)
            exc_type, exc_value, _ = record.exc_info
            log_output["data"].setdefault("exception_class_name", exc_type.__name__ if exc_type else "N/A")
            log_output["data"].setdefault("error_message", str(exc_value) if exc_value else "N/A")

        # default=str covers datetimes and enums passed in data
        return json.dumps(log_output, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", json_format: bool = False, log_file: Optional[str] = None) -> None:
    """
    Configure the root logger, replacing any handlers already installed

    Args:
        level: Log level name
        json_format: Emit JSON lines instead of plain text
        log_file: Also write to this file
    """
    formatter = JsonFormatter() if json_format else logging.Formatter(TEXT_FORMAT)

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), handlers=handlers, force=True)
