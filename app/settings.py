from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict


DATA_DIR = Path(os.environ.get("DUTY_ROSTER_DATA_DIR") or Path(__file__).resolve().parent / "data")
SETTINGS_FILE = DATA_DIR / "settings.json"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_TRUTHY = {"1", "true", "yes", "on"}


def baseline_settings() -> Dict[str, Any]:
    return {
        "pto_balances_enabled": True,
        "max_step_attempts": 3,
        "extra_positions": [],
        "log_level": "INFO",
    }


def _apply_environment(data: Dict[str, Any]) -> Dict[str, Any]:
    balances = os.environ.get("DUTY_ROSTER_PTO_BALANCES")
    if balances is not None:
        data["pto_balances_enabled"] = balances.strip().lower() in _TRUTHY
    level = os.environ.get("DUTY_ROSTER_LOG_LEVEL")
    if level:
        data["log_level"] = level.strip().upper()
    return data


def load_settings(path: Path | None = None) -> Dict[str, Any]:
    target = path or SETTINGS_FILE
    data = baseline_settings()
    if target.exists():
        try:
            stored = json.loads(target.read_text(encoding="utf-8"))
            if not isinstance(stored, dict):
                raise ValueError("settings file must hold a JSON object")
        except (OSError, ValueError) as exc:
            logging.getLogger(__name__).warning("Ignoring unreadable settings file %s: %s", target, exc)
            stored = {}
        for key in data:
            if key in stored:
                data[key] = stored[key]
    data["pto_balances_enabled"] = bool(data["pto_balances_enabled"])
    try:
        data["max_step_attempts"] = max(1, int(data["max_step_attempts"]))
    except (TypeError, ValueError):
        data["max_step_attempts"] = baseline_settings()["max_step_attempts"]
    if not isinstance(data["extra_positions"], list):
        data["extra_positions"] = []
    return _apply_environment(data)


def save_settings(values: Dict[str, Any], path: Path | None = None) -> Dict[str, Any]:
    target = path or SETTINGS_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    merged = baseline_settings()
    merged.update({key: value for key, value in (values or {}).items() if key in merged})
    target.write_text(json.dumps(merged, indent=2), encoding="utf-8")
    return load_settings(target)


_logging_configured = False


def configure_logging(level: str | None = None) -> None:
    global _logging_configured
    if _logging_configured:
        return
    resolved = (level or load_settings().get("log_level") or "INFO").upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
    _logging_configured = True
