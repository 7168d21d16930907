# riverflow/core/logging_setup.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


def setup_logging(section: Dict[str, Any]) -> None:
    """
    logging:
      level: INFO
      file: ./data/riverflow.log     # optional
      levels: {throttle: DEBUG, mqtt: WARNING}
    """
    level = str(section.get("level") or "INFO").upper()
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    log_file = section.get("file")
    if log_file:
        Path(log_file).resolve().parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=level, format=FORMAT, handlers=handlers, force=True)

    for name, lvl in (section.get("levels") or {}).items():
        logging.getLogger(name).setLevel(str(lvl).upper())
