"""
Tests for the gzip rotator used by the jobkeeper log file handler.
"""

import gzip
import logging
import logging.handlers

from jobkeeper.logger import log_file_handler, rotator


def test_handler_uses_rotator():
    assert log_file_handler.rotator is rotator


def test_rollover_compresses_previous_file(tmp_path):
    log_file = tmp_path / "jobkeeper.log"
    rotation_logger = logging.getLogger("jobkeeper.tests.rotation")
    rotation_logger.propagate = False
    rotation_logger.setLevel(logging.INFO)

    handler = logging.handlers.TimedRotatingFileHandler(log_file, when="midnight")
    handler.rotator = rotator
    rotation_logger.addHandler(handler)
    try:
        rotation_logger.info("execution 1 finished")
        handler.doRollover()
        rotation_logger.info("execution 2 finished")
    finally:
        rotation_logger.removeHandler(handler)
        handler.close()

    compressed = list(tmp_path.glob("*.gz"))
    assert len(compressed) == 1
    with gzip.open(compressed[0], "rt", encoding="utf-8") as f:
        rolled = f.read()
    assert "execution 1 finished" in rolled
    assert "execution 2 finished" not in rolled

    # Only the live file and the compressed copy remain
    assert sorted(p.suffix for p in tmp_path.iterdir()) == [".gz", ".log"]
    assert "execution 2 finished" in log_file.read_text(encoding="utf-8")
