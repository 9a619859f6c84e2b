"""
KBPC App Config & Logging
- Local JSON settings file inside the user data directory (created on first run).
- Logging is configured once at process start; modules use logging.getLogger(__name__).
"""

from __future__ import annotations

import json
import logging
import os
import sys

# [Settings] data location (isolated per local user, overridable for tests/portable installs)
APP_DATA_DIR = os.environ.get("KBPC_DATA_DIR") or os.path.join(os.path.expanduser("~"), "KBPC_Data")
APP_CONFIG_PATH = os.path.join(APP_DATA_DIR, "kbpc_config.json")

DEFAULT_CONFIG = {
    # JSON document with optional keys: positions / belts / branches / users
    "remote_seed_url": "",
    "remote_seed_timeout": 5,
    # per-value storage quota (~5MB); a single value above this is rejected
    "max_value_bytes": 5_000_000,
    "nia_prefix": "NIA",
    "default_password": "password",
    "log_level": "INFO",
    "ai_model": "gpt-4o-mini",
}


def load_app_config() -> dict:
    """Load local settings (create the file with defaults when absent)."""
    cfg = dict(DEFAULT_CONFIG)
    try:
        os.makedirs(APP_DATA_DIR, exist_ok=True)
        if os.path.exists(APP_CONFIG_PATH):
            with open(APP_CONFIG_PATH, "r", encoding="utf-8") as f:
                data = json.load(f) or {}
            cfg.update({k: v for k, v in data.items() if v is not None})
        else:
            with open(APP_CONFIG_PATH, "w", encoding="utf-8") as f:
                json.dump(cfg, f, ensure_ascii=False, indent=2)
    except (OSError, ValueError) as e:
        # a broken config file must not stop the app
        logging.getLogger(__name__).warning("config load failed, using defaults: %s", e)
    return cfg


def save_app_config(cfg: dict) -> bool:
    try:
        os.makedirs(APP_DATA_DIR, exist_ok=True)
        with open(APP_CONFIG_PATH, "w", encoding="utf-8") as f:
            json.dump(cfg, f, ensure_ascii=False, indent=2)
        return True
    except OSError as e:
        logging.getLogger(__name__).warning("config save failed: %s", e)
        return False


def get_setting(name: str, default=None):
    return load_app_config().get(name, DEFAULT_CONFIG.get(name, default))


def configure_logging(level: str | None = None) -> None:
    """
    Configure the root logger once (console handler).
    Streamlit reruns the script on every interaction, so repeated calls must not stack handlers.
    """
    level_name = (level or get_setting("log_level") or "INFO").upper()
    log_level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if any(getattr(h, "_kbpc_handler", False) for h in root_logger.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    handler._kbpc_handler = True  # type: ignore[attr-defined]
    root_logger.addHandler(handler)

    # third-party noise
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
