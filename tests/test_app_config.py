import json
import logging
import os

import app_config


def test_load_creates_file_with_defaults():
    assert not os.path.exists(app_config.APP_CONFIG_PATH)
    cfg = app_config.load_app_config()
    assert cfg == app_config.DEFAULT_CONFIG
    with open(app_config.APP_CONFIG_PATH, encoding="utf-8") as f:
        assert json.load(f) == app_config.DEFAULT_CONFIG


def test_saved_values_override_defaults():
    assert app_config.save_app_config({"nia_prefix": "KBPC", "log_level": None})
    cfg = app_config.load_app_config()
    assert cfg["nia_prefix"] == "KBPC"
    assert cfg["log_level"] == "INFO"
    assert app_config.get_setting("missing", "x") == "x"


def test_broken_config_file_falls_back_to_defaults():
    with open(app_config.APP_CONFIG_PATH, "w", encoding="utf-8") as f:
        f.write("{oops")
    assert app_config.load_app_config() == app_config.DEFAULT_CONFIG


def test_configure_logging_adds_one_handler():
    root = logging.getLogger()
    before, level = list(root.handlers), root.level
    try:
        app_config.configure_logging("DEBUG")
        app_config.configure_logging("DEBUG")
        ours = [h for h in root.handlers if getattr(h, "_kbpc_handler", False)]
        assert len(ours) == 1
        assert root.level == logging.DEBUG
    finally:
        for h in root.handlers[:]:
            if h not in before:
                root.removeHandler(h)
        root.setLevel(level)
