"""
LogManager: 单次运行文件命名、过期清理保留当前文件；启动时 llm_raw 日志一并清理。
"""

import os
import time
from unittest.mock import MagicMock

from houndmaster.api import server
from houndmaster.llm.llm_manager import RawLogStore
from houndmaster.log.log_manager import LogManager


def test_run_log_file_receives_records(tmp_path):
    manager = LogManager({"log_dir": str(tmp_path), "console_output": False, "level": "debug"})
    logger = manager.get_logger("houndmaster.test.run_file")
    logger.debug("listing page fetched")
    for handler in logger.handlers:
        handler.flush()

    assert manager.run_log_path.name.startswith("houndmaster_")
    assert "listing page fetched" in manager.run_log_path.read_text(encoding="utf-8")


def test_cleanup_removes_only_expired_files(tmp_path):
    manager = LogManager({"log_dir": str(tmp_path), "console_output": False, "max_age_days": 7})
    manager.get_logger("houndmaster.test.cleanup").info("start")

    old = tmp_path / "houndmaster_2020-01-01_00-00-00.log"
    old.write_text("old", encoding="utf-8")
    stale = time.time() - 30 * 86400
    os.utime(old, (stale, stale))
    recent = tmp_path / "houndmaster_recent.log"
    recent.write_text("recent", encoding="utf-8")

    report = manager.cleanup()
    assert report["deleted"] == [old.name]
    assert report["remaining"] == 2
    assert manager.run_log_path.exists()


def test_raw_llm_log_cleanup_drops_expired_jsonl(tmp_path):
    store = RawLogStore(tmp_path)
    store.write({"provider": "openai", "final_text": "{}"})
    old = tmp_path / "2020-01-01.jsonl"
    old.write_text("{}\n", encoding="utf-8")
    stale = time.time() - 30 * 86400
    os.utime(old, (stale, stale))

    assert store.cleanup(max_age_days=7) == [old.name]
    assert len(list(tmp_path.glob("*.jsonl"))) == 1


def test_startup_cleanup_covers_raw_llm_logs(monkeypatch):
    manager = MagicMock()
    manager.cleanup_logs.return_value = ["2020-01-01.jsonl"]
    monkeypatch.setattr(server, "get_manager", lambda: manager)
    monkeypatch.setattr(server, "cleanup_logs", lambda: {"deleted": ["houndmaster_old.log"], "remaining": 1})

    assert server.cleanup_expired_logs() == 2
    manager.cleanup_logs.assert_called_once_with(server.settings.logging.max_age_days)


def test_startup_cleanup_survives_llm_config_error(monkeypatch):
    def _broken():
        raise FileNotFoundError("llm config missing")

    monkeypatch.setattr(server, "get_manager", _broken)
    monkeypatch.setattr(server, "cleanup_logs", lambda: {"deleted": [], "remaining": 0})
    assert server.cleanup_expired_logs() == 0
