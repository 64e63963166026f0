from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from backoffice.app.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
LOG_FILE_NAME = "backoffice.log"


def setup_logging(settings: Settings) -> Path | None:
    """
    Console + (optionnel) fichier rotatif sous LOG_DIR/backoffice.log.
    Retourne le chemin du fichier de log s'il y en a un.
    """
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    fmt = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)

    # évite les handlers en double (reload uvicorn, tests)
    if not any(getattr(h, "_backoffice", False) for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        console._backoffice = True
        root.addHandler(console)

    log_path = None
    if settings.LOG_DIR is not None:
        log_dir = Path(settings.LOG_DIR).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / LOG_FILE_NAME

        if not any(getattr(h, "baseFilename", "").endswith(LOG_FILE_NAME) for h in root.handlers):
            handler = logging.handlers.RotatingFileHandler(
                log_path, maxBytes=5_000_000, backupCount=3, encoding="utf-8"
            )
            handler.setFormatter(fmt)
            handler.setLevel(level)
            root.addHandler(handler)

    # les loggers uvicorn/fastapi remontent vers la racine
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        lg = logging.getLogger(name)
        lg.setLevel(level)
        lg.propagate = True

    return log_path
