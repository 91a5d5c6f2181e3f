from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

_cycle_id_var: ContextVar[str] = ContextVar("cycle_id", default="-")


class CycleIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.cycle_id = _cycle_id_var.get()
        return True


def configure_logging(level: str = "INFO") -> None:
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(cycle_id)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CycleIdFilter())
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def set_cycle_id(cycle_id: str) -> None:
    _cycle_id_var.set(cycle_id)


def get_cycle_id() -> str:
    return _cycle_id_var.get()
