from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(project_id)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

LOG_PROJECT_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_project_id", default=None)


class ProjectContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.project_id = LOG_PROJECT_ID.get() or "-"
        return True


@contextmanager
def log_context(project_id: Optional[str] = None) -> Iterator[None]:
    token = LOG_PROJECT_ID.set(project_id) if project_id is not None else None
    try:
        yield
    finally:
        if token is not None:
            LOG_PROJECT_ID.reset(token)


def configure_logging(level: str | int = logging.INFO, force: bool = False) -> logging.Logger:
    root = logging.getLogger()
    if getattr(root, "_explainer_logging_configured", False) and not force:
        return root

    if force:
        for handler in list(root.handlers):
            if getattr(handler, "_explainer_handler", False):
                root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    # Filter on the handler so records from every logger get a project_id.
    handler.addFilter(ProjectContextFilter())
    handler._explainer_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)
    logging.captureWarnings(True)
    root._explainer_logging_configured = True  # type: ignore[attr-defined]
    return root
