# run.py
import logging

import uvicorn

from riverflow.core.config import settings
from riverflow.core.logging_setup import setup_logging

settings.load_yaml_config()
setup_logging(settings.logging)
logging.getLogger("web").info("config: %s", settings.config_path)

uvicorn.run(
    "riverflow.main:app",
    host=settings.server["host"],
    port=int(settings.server["port"]),
    reload=False,
)
