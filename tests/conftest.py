import pytest

import app_config
import database
import id_generator
import seeds


@pytest.fixture(autouse=True)
def temp_store(tmp_path, monkeypatch):
    """
    Point the config file and the SQLite store at a temporary directory.
    Every test starts from an empty store.
    """
    monkeypatch.setattr(app_config, "APP_DATA_DIR", str(tmp_path))
    monkeypatch.setattr(app_config, "APP_CONFIG_PATH", str(tmp_path / "kbpc_config.json"))
    monkeypatch.setattr(database, "DB_PATH", str(tmp_path / "kbpc_test.db"))
    monkeypatch.setattr(database, "MAX_VALUE_BYTES", None)
    monkeypatch.setattr(id_generator, "_issued_high", 0)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    database.init_db()
    yield tmp_path


@pytest.fixture
def seeded():
    """Store initialized from the hardcoded baseline (no network)."""
    return seeds.initialize(fetch_remote=False)


@pytest.fixture
def set_config():
    def _set(**values):
        cfg = app_config.load_app_config()
        cfg.update(values)
        assert app_config.save_app_config(cfg)
    return _set
