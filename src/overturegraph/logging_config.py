from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path
from typing import Any, Optional

import yaml

from overturegraph.settings import project_root


def level_for_verbosity(verbosity: int) -> int:
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(
    logging_config_path: str | Path | None = None,
    *,
    verbosity: Optional[int] = None,
) -> None:
    root = project_root()
    candidate = logging_config_path or os.getenv(
        "OVERTUREGRAPH_LOGGING_CONFIG", "configs/logging.yaml"
    )
    path = Path(candidate)
    if not path.is_absolute():
        path = root / path
    if not path.exists():
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "standard": {
                        "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
                    }
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "level": "DEBUG",
                        "formatter": "standard",
                        "stream": "ext://sys.stderr",
                    }
                },
                "root": {"level": "INFO", "handlers": ["console"]},
            }
        )
    else:
        config: dict[str, Any] = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        logging.config.dictConfig(config)

    if verbosity is not None:
        logging.getLogger().setLevel(level_for_verbosity(verbosity))
