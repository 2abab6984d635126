"""
Result Formatting

Renders command results as plain text or JSON for the command line.
"""

import json
import sys
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, TextIO

from licensemanager.license_models import format_timestamp


def _to_plain(data: Any) -> Any:
    """Convert results into JSON-compatible values"""
    if hasattr(data, "to_dict"):
        return _to_plain(data.to_dict())
    if is_dataclass(data) and not isinstance(data, type):
        return _to_plain(asdict(data))
    if isinstance(data, dict):
        return {str(k): _to_plain(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [_to_plain(v) for v in data]
    if isinstance(data, datetime):
        return format_timestamp(data)
    if isinstance(data, Enum):
        return data.value
    return data


class TextFormatter:
    """key: value lines"""

    def format(self, data: Any) -> str:
        plain = _to_plain(data)
        if isinstance(plain, dict):
            return "\n".join(f"{key}: {self._scalar(value)}" for key, value in plain.items())
        if isinstance(plain, list):
            return "\n\n".join(self.format(item) for item in plain)
        return self._scalar(plain)

    @staticmethod
    def _scalar(value: Any) -> str:
        if value is None:
            return "-"
        if isinstance(value, bool):
            return "yes" if value else "no"
        if isinstance(value, list):
            return ", ".join(str(v) for v in value)
        return str(value)

    def print(self, data: Any, stream: Optional[TextIO] = None) -> None:
        print(self.format(data), file=stream or sys.stdout)


class JSONFormatter:
    def __init__(self, indent: Optional[int] = 2):
        self.indent = indent

    def format(self, data: Any) -> str:
        return json.dumps(_to_plain(data), indent=self.indent, ensure_ascii=False)

    def print(self, data: Any, stream: Optional[TextIO] = None) -> None:
        print(self.format(data), file=stream or sys.stdout)


def get_formatter(output_format: str = "text"):
    """Return the formatter for "text" or "json" (text for anything else)"""
    if output_format == "json":
        return JSONFormatter(indent=2)
    return TextFormatter()
