"""Tests for configuration helpers and logging setup."""

import importlib

from loguru import logger

import visionquest.config as config
from visionquest.config import DEFAULT_MODEL_URL, format_model_url, load_model_url, save_model_url
from visionquest.logs import setup_logging
from visionquest.storage import MemoryStore


class TestModelUrl:
    def test_existing_slash_kept(self):
        assert format_model_url("https://tm.example/m/") == "https://tm.example/m/"

    def test_saved_url_wins(self):
        store = MemoryStore({"tm_model_url": "https://tm.example/saved/"})
        assert load_model_url(store) == "https://tm.example/saved/"

    def test_default_when_unset(self):
        assert load_model_url(MemoryStore()) == DEFAULT_MODEL_URL

    def test_save_normalizes(self):
        store = MemoryStore()
        save_model_url(store, "https://tm.example/new")
        assert store.get("tm_model_url") == "https://tm.example/new/"


class TestLogging:
    def test_setup_writes_log_file(self, tmp_path):
        setup_logging(level="INFO", log_dir=tmp_path)
        logger.info("hello from the test")
        logger.remove()

        files = list(tmp_path.glob("*.log"))
        assert files
        assert "hello from the test" in files[0].read_text()


class TestDataDir:
    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("VISIONQUEST_DATA_DIR", str(tmp_path / "state"))
        try:
            reloaded = importlib.reload(config)
            assert reloaded.DATA_DIR == tmp_path / "state"
            assert reloaded.MODEL_CACHE_DIR == tmp_path / "state" / "models"
            assert reloaded.LOG_DIR == tmp_path / "state" / "logs"
        finally:
            monkeypatch.delenv("VISIONQUEST_DATA_DIR")
            importlib.reload(config)
