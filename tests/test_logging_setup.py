import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from frame_stats.logging_setup import configure_logging  # noqa: E402


def test_log_file_receives_records(tmp_path):
    log_path = tmp_path / "logs" / "run.log"

    logger = configure_logging("frame-stats-log-test", log_file=log_path)
    logger.info("cached 5 frames")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "INFO - cached 5 frames" in log_path.read_text(encoding="utf-8")


def test_unopenable_log_file_falls_back_to_console(tmp_path, capsys):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")

    logger = configure_logging("frame-stats-log-test", log_file=blocker / "run.log")

    assert [type(handler) for handler in logging.getLogger().handlers] == [logging.StreamHandler]
    assert "Not writing log file" in capsys.readouterr().err
    assert logger.name == "frame-stats-log-test"


def test_scheduler_logger_quiet_unless_debug(tmp_path):
    configure_logging(level=logging.INFO)
    assert logging.getLogger("apscheduler").level == logging.WARNING

    configure_logging(level=logging.DEBUG)
    assert logging.getLogger("apscheduler").level == logging.DEBUG
