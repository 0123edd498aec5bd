import logging
import sys

from ninofi.config import settings

ROOT_LOGGER = "ninofi"
LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure the ``ninofi`` logger hierarchy. Safe to call more than once."""
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel((level or settings.LOG_LEVEL).upper())

    if not any(getattr(h, "_ninofi", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._ninofi = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    root.propagate = False

    # SQL echo is far too chatty outside debugging
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
