import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("toolstream")

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(
    settings: Optional[Dict[str, Any]] = None,
    level: Optional[str] = None,
    handler: Optional[logging.Handler] = None,
) -> None:
    """Apply the `logging` section of the settings to the package logger.
    A given handler replaces any previously installed one."""
    log_cfg = (settings or {}).get("logging", {}) or {}
    level_name = (level or log_cfg.get("level") or "WARNING").upper()
    logger.setLevel(getattr(logging, level_name, logging.WARNING))

    if handler is None:
        if logger.handlers:
            return
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(log_cfg.get("format") or DEFAULT_FORMAT))
    logger.handlers = [handler]
