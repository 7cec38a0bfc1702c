"""
App configuration: YAML file merged over built-in defaults, plus the
provider API key from the environment or the saved settings file.
"""
from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml


logger = logging.getLogger(__name__)

ENV_API_KEYS = ("GEMINI_API_KEY", "API_KEY")
SETTINGS_FILE = "settings.json"
SAVES_FILE = "saves.json"
LEARNING_FILE = "learning.json"


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def _defaults() -> dict[str, Any]:
    return {
        "puzzle": {
            "grid_size": 32,
            "color_count": 10,
            "style": "cute",
            "difficulty": "medium",
        },
        "storage": {"dir": str(Path.home() / ".colorsplash")},
        "provider": {
            "model": "gemini-2.5-flash-image",
            "timeout_seconds": 90,
        },
        "ui": {
            "cooldown_ms": 10000,
            "hint_ms": 3000,
            "toast_ms": 2000,
        },
    }


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_config(config_path: Path | None = None) -> dict[str, Any]:
    """Load config from YAML. Path is optional; defaults to config/default.yaml."""
    if config_path is None:
        config_path = _project_root() / "config" / "default.yaml"
    path = Path(config_path)
    if not path.exists():
        return _defaults()
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: top level is not a mapping", path)
        return _defaults()
    return _merge(_defaults(), data)


def get_storage_dir(config: dict[str, Any]) -> Path:
    d = Path(os.path.expanduser(str(config.get("storage", {}).get("dir", "~/.colorsplash"))))
    if not d.is_absolute():
        d = _project_root() / d
    return d


def _settings_path(config: dict[str, Any]) -> Path:
    return get_storage_dir(config) / SETTINGS_FILE


def load_settings(config: dict[str, Any]) -> dict[str, Any]:
    path = _settings_path(config)
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable settings %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def save_settings(config: dict[str, Any], **values: Any) -> None:
    path = _settings_path(config)
    data = load_settings(config)
    for key, value in values.items():
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def resolve_api_key(config: dict[str, Any]) -> Optional[str]:
    """Saved key first, then environment. Quotes and whitespace are stripped."""
    candidates = [load_settings(config).get("api_key")]
    candidates.extend(os.environ.get(name) for name in ENV_API_KEYS)
    for raw in candidates:
        if not raw:
            continue
        key = str(raw).replace('"', "").replace("'", "").strip()
        if key:
            return key
    return None
