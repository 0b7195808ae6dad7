"""Clic-Tools — Root logger setup."""
import logging

from clictools.config import Settings


def configure_logging(settings: Settings) -> None:
    """Install a single console handler on the root logger."""
    root = logging.getLogger()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    root.setLevel(level)

    for handler in root.handlers[:]:
        if getattr(handler, "_clictools", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(settings.LOG_FORMAT))
    handler._clictools = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # SQL echo is driven by DEBUG on the engine; keep the logger quiet otherwise
    if not settings.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
