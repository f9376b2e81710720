from __future__ import annotations

from acquisition.metrics import ApiMetrics
from shared.logger import log_exception, rotate_log_if_needed, setup_logger


def test_setup_logger_writes_to_file_once(tmp_path) -> None:
    log_file = tmp_path / "logs" / "analyzer.log"
    logger = setup_logger("test-analyzer-file", log_file)
    again = setup_logger("test-analyzer-file", log_file)

    assert again is logger
    assert len(logger.handlers) == 1

    try:
        raise ConnectionError("socket closed")
    except ConnectionError as e:
        log_exception(logger, "Download failed", e)
    logger.handlers[0].flush()

    text = log_file.read_text(encoding="utf-8")
    assert "[ERROR] test-analyzer-file: Download failed: socket closed" in text
    assert "Traceback" in text

    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_rotate_log_keeps_small_files(tmp_path) -> None:
    log_file = tmp_path / "analyzer.log"
    log_file.write_text("short", encoding="utf-8")

    rotate_log_if_needed(log_file, max_size_mb=1)

    assert log_file.exists()


def test_rotate_log_prunes_old_backups(tmp_path) -> None:
    for i in range(3):
        (tmp_path / f"analyzer_2020010{i}_000000.log").write_text("old", encoding="utf-8")
    log_file = tmp_path / "analyzer.log"
    log_file.write_bytes(b"x" * (1024 * 1024 + 1))

    rotate_log_if_needed(log_file, max_size_mb=1, keep_backups=2)

    assert not log_file.exists()
    backups = sorted(p.name for p in tmp_path.glob("analyzer_*.log"))
    assert len(backups) == 2
    assert "analyzer_20200100_000000.log" not in backups


def test_metrics_snapshot() -> None:
    metrics = ApiMetrics()
    metrics.record("get_user_v1")
    metrics.record("get_user_v1")
    metrics.record("download_beatmap", 3)

    assert metrics.snapshot() == {"get_user_v1": 2, "download_beatmap": 3}

    remaining = [125.0]
    metrics.track_token_lifetime(lambda: remaining[0])
    assert metrics.snapshot()["token_expiry_minutes"] == 2
    remaining[0] = -5
    assert metrics.count("missing") == 0
    assert metrics.snapshot()["token_expiry_minutes"] == 0
