from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from .settings import data_dir, settings

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None, *, to_file: bool = True) -> logging.Logger:
    """Configure the ``quill`` logger once per process.

    Logs go to stderr and, unless disabled, to a size-rotated file in the
    data directory.
    """
    logger = logging.getLogger("quill")
    if getattr(logger, "_quill_configured", False):
        if level:
            logger.setLevel(level.upper())
        return logger

    logger.setLevel((level or settings.log_level).upper())
    formatter = logging.Formatter(_FORMAT)

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if to_file:
        log_dir = data_dir()
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_dir / settings.log_path.name,
                maxBytes=settings.log_max_bytes,
                backupCount=settings.log_backup_count,
                encoding="utf-8",
            )
        except OSError as exc:
            logger.warning("File logging disabled: %s", exc)
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    logger.propagate = False
    logger._quill_configured = True  # type: ignore[attr-defined]
    return logger
