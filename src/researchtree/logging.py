"""Logging utilities."""

from __future__ import annotations

import contextlib
import contextvars
import logging
from typing import Any

from rich.logging import RichHandler


_tree_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("researchtree_tree_id", default="-")
_iteration_var: contextvars.ContextVar[str] = contextvars.ContextVar("researchtree_iteration", default="-")
_node_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("researchtree_node_id", default="-")


class _ContextFilter(logging.Filter):
    """Inject tree and node context into log records."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.tree = _tree_id_var.get()  # type: ignore[attr-defined]
        record.node = _node_id_var.get()  # type: ignore[attr-defined]
        record.iteration = _iteration_var.get()  # type: ignore[attr-defined]
        return True


@contextlib.contextmanager
def tree_context(*, tree_id: str, iteration: str | None = None) -> Any:
    """Temporarily bind tree context for structured logging.

    asyncio tasks copy the current context when created, so expansion tasks spawned inside
    this block log with the same tree id.

    Args:
        tree_id: Tree identifier.
        iteration: Optional iteration label.
    """

    token_tree = _tree_id_var.set(tree_id)
    token_iteration = _iteration_var.set(iteration or _iteration_var.get())
    try:
        yield
    finally:
        _tree_id_var.reset(token_tree)
        _iteration_var.reset(token_iteration)


@contextlib.contextmanager
def node_context(node_id: str) -> Any:
    """Bind the node being expanded for the duration of one iteration."""

    token = _node_id_var.set(node_id)
    try:
        yield
    finally:
        _node_id_var.reset(token)


def set_iteration(iteration: str) -> None:
    """Update current iteration label in context."""

    _iteration_var.set(iteration)


def configure_logging(level: str = "INFO") -> None:
    """Configure application logging.

    Args:
        level: Logging level name.
    """

    handler = RichHandler(rich_tracebacks=True, show_time=True, show_level=True)
    handler.addFilter(_ContextFilter())

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s tree=%(tree)s node=%(node)s iter=%(iteration)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    # Avoid duplicate handlers if configure_logging is called multiple times
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(handler)
    else:
        for h in root.handlers:
            if isinstance(h, RichHandler):
                if not any(isinstance(f, _ContextFilter) for f in h.filters):
                    h.addFilter(_ContextFilter())
                h.setFormatter(formatter)


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""

    return logging.getLogger(name)


def log_exception(logger: logging.Logger, msg: str, **context: Any) -> None:
    """Log an exception with optional structured context."""

    if context:
        logger.exception("%s | context=%s", msg, context)
    else:
        logger.exception("%s", msg)
