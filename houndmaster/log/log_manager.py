"""
日志管理模块：分级日志、按进程运行实例命名、按天数清理。
"""
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_LEVEL = "INFO"
DEFAULT_LOG_DIR = "logs/app"
DEFAULT_MAX_AGE_DAYS = 14
LOG_FORMAT = "%(asctime)s.%(msecs)03d | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogManager:
    """
    控制台 + 单次运行日志文件双输出。
    每个进程写入 logs/app/houndmaster_<启动时间>.log，超过 max_age_days 的旧文件由 cleanup() 删除。
    """

    def __init__(self, config: dict[str, Any] | None = None):
        config = config or {}
        log_dir = Path(config.get("log_dir") or DEFAULT_LOG_DIR)
        self.log_dir = log_dir if log_dir.is_absolute() else _ROOT / log_dir
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.max_age_days = int(config.get("max_age_days", DEFAULT_MAX_AGE_DAYS))
        self.console_output = bool(config.get("console_output", True))
        level_name = str(config.get("level") or DEFAULT_LEVEL).upper()
        self.level = getattr(logging, level_name, logging.INFO)

        self._formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
        self._run_log_path = self.log_dir / datetime.now().strftime("houndmaster_%Y-%m-%d_%H-%M-%S.log")

    @property
    def run_log_path(self) -> Path:
        return self._run_log_path

    def get_logger(self, name: str) -> logging.Logger:
        logger = logging.getLogger(name)
        if logger.handlers:
            return logger

        logger.setLevel(self.level)
        logger.propagate = False

        if self.console_output:
            ch = logging.StreamHandler()
            ch.setLevel(self.level)
            ch.setFormatter(self._formatter)
            logger.addHandler(ch)

        fh = logging.FileHandler(self._run_log_path, encoding="utf-8")
        fh.setLevel(self.level)
        fh.setFormatter(self._formatter)
        logger.addHandler(fh)
        return logger

    def cleanup(self) -> dict[str, Any]:
        """删除超过 max_age_days 的历史日志（当前运行文件除外），返回清理报告"""
        report: dict[str, Any] = {"deleted": [], "remaining": 0}
        cutoff = datetime.now() - timedelta(days=self.max_age_days)
        for f in sorted(self.log_dir.glob("*.log")):
            if f == self._run_log_path:
                continue
            if datetime.fromtimestamp(f.stat().st_mtime) < cutoff:
                f.unlink()
                report["deleted"].append(f.name)
        report["remaining"] = len(list(self.log_dir.glob("*.log")))
        return report


_manager: LogManager | None = None


def _settings_config() -> dict[str, Any]:
    from config.settings import settings

    return {
        "level": settings.logging.level,
        "log_dir": settings.logging.log_dir,
        "max_age_days": settings.logging.max_age_days,
    }


def init_logging(config: dict[str, Any] | None = None) -> LogManager:
    """初始化日志。未传 config 时读取 settings.logging"""
    global _manager
    _manager = LogManager(config if config is not None else _settings_config())
    return _manager


def get_logger(name: str) -> logging.Logger:
    if _manager is None:
        init_logging()
    return _manager.get_logger(name)


def cleanup_logs() -> dict[str, Any]:
    if _manager is None:
        init_logging()
    return _manager.cleanup()
