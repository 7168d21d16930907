# riverflow/core/config.py
from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import Field, PrivateAttr
from pydantic_settings import BaseSettings

from riverflow.core.validate_cfg import validate_cfg

# Defaults for every YAML section. A section present in config.yaml is merged
# over these key by key, so a partial YAML is fine.
DEFAULTS: Dict[str, Dict[str, Any]] = {
    "server": {"host": "0.0.0.0", "port": 3001},
    "db": {"url": "sqlite:///./data/data.db"},
    "live": {
        "history_size": 600,                   # ~10 minutes at 1 Hz
        "snapshot_path": "./data/live-data.json",
    },
    "alerts": {
        "confirm_window_ms": 5000,
        "policy": "absolute",                  # "absolute" | "relative"
        "warning_level": 3.5,
        "danger_level": 4.5,
        "relative_warning_pct": 70,
        "relative_danger_pct": 90,
        "nodes": {},
    },
    "persistence": {
        "write_interval_s": 30,
        "keep_rows": 20,                       # ~10 minutes at the write interval
        "shutdown_timeout_s": 5,
        "flow_rate": 0.0,
        "default_location": {"latitude": 0.0, "longitude": 0.0},
    },
    "broadcast": {"send_timeout_s": 5},
    "mqtt": {
        "enabled": False,
        "host": "localhost",
        "port": 1883,
        "qos": 0,
        "client_id": "",
        "base_topic": "/riverflow",
        "channel": "sensor/readings",
    },
    "logging": {"level": "INFO", "file": "", "levels": {}},
}


def _merge(base: Dict[str, Any], over: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (over or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict) and k != "nodes":
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


class Settings(BaseSettings):
    # path to the main YAML (override with the CONFIG_FILE env variable)
    config_file: str = Field(default="config.yaml", validation_alias="CONFIG_FILE")

    # loaded YAML, already merged over DEFAULTS
    _cfg: Dict[str, Any] = PrivateAttr(default_factory=lambda: copy.deepcopy(DEFAULTS))
    _config_path: Path | None = PrivateAttr(default=None)

    # ───────── paths ─────────
    @property
    def config_path(self) -> Path:
        if self._config_path is None:
            p = Path(self.config_file)
            if not p.is_absolute():
                p = Path.cwd() / p
            self._config_path = p
        return self._config_path

    # ───────── YAML cfg ─────────
    @property
    def cfg(self) -> Dict[str, Any]:
        return self._cfg

    def get_cfg(self) -> Dict[str, Any]:
        return self._cfg

    def set_cfg(self, data: Dict[str, Any]) -> None:
        """Replace the active config (validated, merged over defaults)."""
        raw = data or {}
        validate_cfg(raw)  # raises ValueError on bad input
        self._cfg = _merge(DEFAULTS, raw)

    def load_yaml_config(self) -> None:
        p = self.config_path
        if p.exists():
            with open(p, "r", encoding="utf-8") as f:
                self.set_cfg(yaml.safe_load(f) or {})
        else:
            self._cfg = copy.deepcopy(DEFAULTS)

    # ───────── sections ─────────
    @property
    def server(self) -> Dict[str, Any]:
        return self._cfg["server"]

    @property
    def live(self) -> Dict[str, Any]:
        return self._cfg["live"]

    @property
    def alerts(self) -> Dict[str, Any]:
        return self._cfg["alerts"]

    @property
    def persistence(self) -> Dict[str, Any]:
        return self._cfg["persistence"]

    @property
    def broadcast(self) -> Dict[str, Any]:
        return self._cfg["broadcast"]

    @property
    def mqtt(self) -> Dict[str, Any]:
        return self._cfg["mqtt"]

    @property
    def logging(self) -> Dict[str, Any]:
        return self._cfg["logging"]

    @property
    def db_url(self) -> str:
        return self._cfg["db"].get("url") or DEFAULTS["db"]["url"]


settings = Settings()
