# riverflow/core/validate_cfg.py
from __future__ import annotations
from typing import Dict, Any, Optional

ALLOWED_POLICIES   = {"absolute", "relative"}
ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

def _as_int(v, name, min_: Optional[int] = None, max_: Optional[int] = None) -> int:
    if isinstance(v, bool):
        raise ValueError(f"{name}: expected an integer, got {v!r}")
    try:
        iv = int(v)
    except Exception:
        raise ValueError(f"{name}: expected an integer, got {v!r}")
    if min_ is not None and iv < min_:
        raise ValueError(f"{name}: must be >= {min_} (got {iv})")
    if max_ is not None and iv > max_:
        raise ValueError(f"{name}: must be <= {max_} (got {iv})")
    return iv

def _as_float(v, name, min_: Optional[float] = None) -> float:
    if isinstance(v, bool):
        raise ValueError(f"{name}: expected a number, got {v!r}")
    try:
        fv = float(v)
    except Exception:
        raise ValueError(f"{name}: expected a number, got {v!r}")
    if min_ is not None and fv < min_:
        raise ValueError(f"{name}: must be >= {min_} (got {fv})")
    return fv

def _as_bool(v, name) -> bool:
    if isinstance(v, bool):
        return v
    # yaml may hand us 'true'/'false'/1/0
    if isinstance(v, (int, float)) and v in (0, 1):
        return bool(v)
    if isinstance(v, str) and v.lower() in ("true", "false"):
        return v.lower() == "true"
    raise ValueError(f"{name}: must be true/false")

def _section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    sec = cfg.get(name, {})
    if sec is None:
        return {}
    if not isinstance(sec, dict):
        raise ValueError(f"{name}: must be a mapping")
    return sec

def _validate_levels(warning, danger, name: str) -> None:
    w = _as_float(warning, f"{name}.warning_level", 0.0)
    d = _as_float(danger, f"{name}.danger_level", 0.0)
    if w > d:
        raise ValueError(f"{name}: warning_level ({w}) must not exceed danger_level ({d})")

def validate_cfg(cfg: Dict[str, Any]) -> None:
    """Raise ValueError with a readable message if the config is invalid."""
    if not isinstance(cfg, dict):
        raise ValueError("root YAML must be a mapping")

    # ─── server ───
    srv = _section(cfg, "server")
    if "port" in srv:
        _as_int(srv["port"], "server.port", 1, 65535)

    # ─── db ───
    db = _section(cfg, "db")
    if "url" in db and not str(db["url"] or "").strip():
        raise ValueError("db.url: must not be empty (e.g. sqlite:///./data/data.db)")

    # ─── live ───
    live = _section(cfg, "live")
    if "history_size" in live:
        _as_int(live["history_size"], "live.history_size", 1)
    if "snapshot_path" in live and not isinstance(live["snapshot_path"], str):
        raise ValueError("live.snapshot_path: must be a string")

    # ─── alerts ───
    al = _section(cfg, "alerts")
    if "confirm_window_ms" in al:
        _as_int(al["confirm_window_ms"], "alerts.confirm_window_ms", 0)
    policy = str(al.get("policy", "absolute")).strip()
    if policy not in ALLOWED_POLICIES:
        raise ValueError(f"alerts.policy: must be one of {sorted(ALLOWED_POLICIES)}")
    if "warning_level" in al or "danger_level" in al:
        _validate_levels(al.get("warning_level", 3.5), al.get("danger_level", 4.5), "alerts")
    wp = _as_float(al.get("relative_warning_pct", 70), "alerts.relative_warning_pct", 0.0)
    dp = _as_float(al.get("relative_danger_pct", 90), "alerts.relative_danger_pct", 0.0)
    if wp > dp:
        raise ValueError("alerts: relative_warning_pct must not exceed relative_danger_pct")

    nodes = al.get("nodes", {}) or {}
    if not isinstance(nodes, dict):
        raise ValueError("alerts.nodes: must be a mapping of node name -> profile")
    for name, prof in nodes.items():
        if not isinstance(prof, dict):
            raise ValueError(f"alerts.nodes[{name}]: must be a mapping")
        if "threshold" in prof:
            _as_float(prof["threshold"], f"alerts.nodes[{name}].threshold", 0.0)
        if "warning_level" in prof or "danger_level" in prof:
            if "warning_level" not in prof or "danger_level" not in prof:
                raise ValueError(f"alerts.nodes[{name}]: warning_level and danger_level go together")
            _validate_levels(prof["warning_level"], prof["danger_level"], f"alerts.nodes[{name}]")

    # ─── persistence ───
    ps = _section(cfg, "persistence")
    if "write_interval_s" in ps:
        _as_float(ps["write_interval_s"], "persistence.write_interval_s", 0.0)
    if "keep_rows" in ps:
        _as_int(ps["keep_rows"], "persistence.keep_rows", 1)
    if "shutdown_timeout_s" in ps:
        _as_float(ps["shutdown_timeout_s"], "persistence.shutdown_timeout_s", 0.0)
    if "flow_rate" in ps:
        _as_float(ps["flow_rate"], "persistence.flow_rate", 0.0)
    loc = ps.get("default_location", {}) or {}
    if not isinstance(loc, dict):
        raise ValueError("persistence.default_location: must be a mapping")
    if "latitude" in loc:
        _as_float(loc["latitude"], "persistence.default_location.latitude")
    if "longitude" in loc:
        _as_float(loc["longitude"], "persistence.default_location.longitude")

    # ─── broadcast ───
    br = _section(cfg, "broadcast")
    if "send_timeout_s" in br:
        _as_float(br["send_timeout_s"], "broadcast.send_timeout_s", 0.0)

    # ─── mqtt ───
    mqtt = _section(cfg, "mqtt")
    enabled = _as_bool(mqtt.get("enabled", False), "mqtt.enabled")
    if enabled:
        host = str(mqtt.get("host", "")).strip()
        if not host:
            raise ValueError("mqtt.host: must not be empty when mqtt.enabled is true")
    if "port" in mqtt:
        _as_int(mqtt["port"], "mqtt.port", 1, 65535)
    if "qos" in mqtt:
        _as_int(mqtt["qos"], "mqtt.qos", 0, 2)
    if "channel" in mqtt and not str(mqtt["channel"] or "").strip():
        raise ValueError("mqtt.channel: must not be empty")

    # ─── logging ───
    lg = _section(cfg, "logging")
    if "level" in lg and str(lg["level"]).upper() not in ALLOWED_LOG_LEVELS:
        raise ValueError(f"logging.level: must be one of {sorted(ALLOWED_LOG_LEVELS)}")
    levels = lg.get("levels", {}) or {}
    if not isinstance(levels, dict):
        raise ValueError("logging.levels: must be a mapping of logger -> level")
    for lname, lvl in levels.items():
        if str(lvl).upper() not in ALLOWED_LOG_LEVELS:
            raise ValueError(f"logging.levels[{lname}]: must be one of {sorted(ALLOWED_LOG_LEVELS)}")
