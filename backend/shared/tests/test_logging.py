import json
import logging
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from shared.logging import MAX_LOGGED_IDS, _serialize_values, bind_view_context, setup_logging


@pytest.fixture(autouse=True)
def _cleanup_root_logger():
    """Close and remove all handlers from the root logger after each test."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)


@pytest.fixture(autouse=True)
def _allow_file_logging():
    """Disable the _is_test guard so logging tests can create real file handlers."""
    with patch("shared.logging._is_test", return_value=False):
        yield


class TestSetupLogging:
    def test_configures_stdout_handler(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()
        root = logging.getLogger()

        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_configures_file_handler_in_log_dir(self, tmp_path):
        log_dir = tmp_path / "tracker"
        setup_logging(log_dir=log_dir)
        root = logging.getLogger()

        assert len(root.handlers) == 2
        file_handler = root.handlers[1]
        assert isinstance(file_handler, logging.FileHandler)
        assert Path(file_handler.baseFilename).parent == log_dir

    def test_log_file_has_datetime_in_name(self, tmp_path):
        fixed_time = datetime(2025, 3, 15, 10, 30, 45, tzinfo=UTC)
        with patch("shared.logging.datetime") as mock_dt:
            mock_dt.now.return_value = fixed_time
            log_path = setup_logging(log_dir=tmp_path / "tracker")

        assert log_path is not None
        assert log_path.name == "2025-03-15_10-30-45.log"

    def test_returns_none_without_log_dir(self):
        assert setup_logging() is None

    def test_no_file_under_pytest(self, tmp_path):
        with patch("shared.logging._is_test", return_value=True):
            assert setup_logging(log_dir=tmp_path / "tracker") is None
        assert not (tmp_path / "tracker").exists()

    def test_writes_to_file(self, tmp_path):
        log_path = setup_logging(log_dir=tmp_path / "nested" / "dir")

        structlog.get_logger("test.writes_to_file").info("hello from test")

        assert log_path is not None
        assert "hello from test" in log_path.read_text()

    def test_clears_existing_handlers_on_repeated_calls(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_custom_log_level(self):
        setup_logging(level=logging.DEBUG)
        assert logging.getLogger().level == logging.DEBUG

    def test_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        setup_logging()
        assert logging.getLogger().level == logging.WARNING

    def test_invalid_log_level_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "bogus")
        with pytest.raises(ValueError, match="Invalid LOG_LEVEL"):
            setup_logging()

    def test_invalid_log_format_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "invalid_value")
        with pytest.raises(ValueError, match="Invalid LOG_FORMAT"):
            setup_logging()

    def test_json_mode_carries_view_context(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        log_path = setup_logging(log_dir=tmp_path / "tracker")

        bind_view_context(viewer_id="u1", view="summary")
        structlog.get_logger("test.json").info("summary built", game_ids={"g2", "g1"})
        structlog.contextvars.clear_contextvars()

        assert log_path is not None
        parsed = json.loads(log_path.read_text().strip().splitlines()[0])
        assert parsed["event"] == "summary built"
        assert parsed["viewer_id"] == "u1"
        assert parsed["view"] == "summary"
        assert parsed["game_ids"] == ["g1", "g2"]

    def test_view_context_binds_partition_when_given(self):
        bind_view_context(viewer_id="u1", view="games", year=2024, table_size=3)
        assert structlog.contextvars.get_contextvars() == {
            "viewer_id": "u1",
            "view": "games",
            "year": 2024,
            "table_size": 3,
        }

        structlog.contextvars.clear_contextvars()
        bind_view_context(viewer_id="u1", view="index")
        assert structlog.contextvars.get_contextvars() == {"viewer_id": "u1", "view": "index"}


class TestSerializeValues:
    class _Kind(Enum):
        SUMMARY = "summary"
        ACHIEVEMENTS = "achievements"

    def test_replaces_enum_with_value(self):
        result = _serialize_values(None, "", {"view": self._Kind.SUMMARY, "msg": "hello"})
        assert result == {"view": "summary", "msg": "hello"}

    def test_replaces_enum_inside_dict_value(self):
        result = _serialize_values(None, "", {"data": {"view": self._Kind.ACHIEVEMENTS, "count": 3}})
        assert result["data"] == {"view": "achievements", "count": 3}

    def test_small_id_sets_become_sorted_lists(self):
        result = _serialize_values(None, "", {"ids": frozenset({"b", "a"})})
        assert result["ids"] == ["a", "b"]

    def test_large_id_sets_become_a_count(self):
        ids = {f"g{i}" for i in range(MAX_LOGGED_IDS + 1)}
        result = _serialize_values(None, "", {"ids": ids})
        assert result["ids"] == f"<{MAX_LOGGED_IDS + 1} ids>"

    def test_leaves_other_values_unchanged(self):
        assert _serialize_values(None, "", {"count": 42, "ids": ["x"]}) == {"count": 42, "ids": ["x"]}
