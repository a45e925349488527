# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""JSON log output which can be ingested by splunk without further parsing rules."""

import datetime
import json
import logging

from pydantic import BaseModel


class SplunkExtendedLogEntry(BaseModel):
    """Log message with additional structured fields.

    Pass an instance directly to the logger, e.g. `_logger.info(Entry(message="..."))`.
    Plain formatters render it as `<message> key=value ...`, the `SplunkFormatter`
    adds the fields as separate json keys.
    """

    message: str

    def fields(self) -> dict:
        return self.model_dump(mode="json", exclude={"message"}, exclude_none=True)

    def __str__(self) -> str:
        return " ".join([self.message, *[f"{key}={value}" for key, value in self.fields().items()]])


class SplunkFormatter(logging.Formatter):
    """Formats each record as a single line json object.

    `defaults` provides fallback values for `app_name` and `correlation_id`,
    the latter is normally set on the record by the `CorrelationIdFilter`.
    """

    def __init__(self, defaults: dict[str, str] | None = None) -> None:
        super().__init__()
        self._defaults = defaults or {}

    def _attribute(self, record: logging.LogRecord, name: str) -> str | None:
        value = getattr(record, name, None)
        return value if value is not None else self._defaults.get(name)

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "@timestamp": datetime.datetime.fromtimestamp(record.created).astimezone().isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "message": record.getMessage(),
            "hash": self._attribute(record, "correlation_id"),
            "app": self._attribute(record, "app_name"),
            "logger": record.name,
            "thread": record.threadName,
        }
        if isinstance(record.msg, SplunkExtendedLogEntry):
            entry.update(record.msg.fields())
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack"] = self.formatStack(record.stack_info)
        return json.dumps(entry, default=str)
