"""Logging setup: one readable line per record, extras appended as JSON."""

import json
import logging
import sys

_STANDARD_RECORD_FIELDS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JSONExtrasFormatter(logging.Formatter):
    """Format records as ``time | LEVEL | logger | message {extras}``.

    Anything passed through ``extra=`` lands on the record as an attribute;
    those attributes are collected and dumped as a JSON object after the
    message so run ids and counters stay greppable.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        line = " | ".join(
            (
                self.formatTime(record, self.datefmt),
                f"{record.levelname:<8}",
                record.name,
                record.message,
            )
        )

        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_RECORD_FIELDS and not key.startswith("_")
        }
        if extras:
            try:
                line += " " + json.dumps(extras, default=str, ensure_ascii=False, sort_keys=True)
            except (TypeError, ValueError):
                pass

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            line += "\n" + record.exc_text
        return line


def setup_logging(level: int = logging.INFO) -> None:
    """Attach a stdout handler to the ``stylenya`` logger (idempotent)."""
    logger = logging.getLogger("stylenya")
    logger.setLevel(level)
    if logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONExtrasFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(handler)
    logger.propagate = False
