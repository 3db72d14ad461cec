import config
import logging_setup
from logging_setup import logger


def test_log_line_with_corrupt_config_reads_it_once(config_file, monkeypatch):
    config_file.write_text("{not json", encoding="utf-8")
    reads = []
    original = config.read_json_config

    def counting_read():
        reads.append(1)
        return original()

    monkeypatch.setattr(config, "read_json_config", counting_read)
    logger.debug("one line")
    logger.info("another line")
    assert len(reads) == 1


def test_file_handler_follows_flag(tmp_path, monkeypatch):
    log_file = tmp_path / "paster.log"
    logging_setup.setup_logging(str(log_file))
    try:
        monkeypatch.setattr(config, "_file_logging_cached", False)
        logger.info("hidden line")
        monkeypatch.setattr(config, "_file_logging_cached", True)
        logger.info("visible line")
    finally:
        logging_setup.setup_logging()
    text = log_file.read_text(encoding="utf-8")
    assert "visible line" in text
    assert "hidden line" not in text


def test_setup_logging_does_not_duplicate_handlers():
    logging_setup.setup_logging()
    logging_setup.setup_logging()
    assert len(logger.handlers) == 2
