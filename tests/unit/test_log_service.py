"""Unit tests for logging configuration."""

import logging

import pytest

from shellflow.services.log_service import (
    SizeAndTimeRotatingHandler,
    configure_logging,
    level_from_name,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestLevelFromName:
    """Tests for level_from_name."""

    @pytest.mark.parametrize(
        "name,expected",
        [("debug", logging.DEBUG), ("INFO", logging.INFO), ("error", logging.ERROR)],
    )
    def test_known_levels(self, name, expected):
        assert level_from_name(name) == expected

    def test_unknown_level_raises(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            level_from_name("verbose")


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_console_only(self, restore_root_logger):
        logger = configure_logging(log_dir=None, level=logging.WARNING)

        assert logger is restore_root_logger
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0], SizeAndTimeRotatingHandler)

    def test_file_handler_writes_to_log_dir(self, restore_root_logger, tmp_path):
        log_dir = tmp_path / "logs"
        logger = configure_logging(log_dir=str(log_dir), log_file="run.log", console=False)

        logging.getLogger("shellflow.test").info("hello")
        for handler in logger.handlers:
            handler.flush()

        assert isinstance(logger.handlers[0], SizeAndTimeRotatingHandler)
        assert "hello" in (log_dir / "run.log").read_text()

    def test_rolls_over_on_size(self, restore_root_logger, tmp_path):
        handler = SizeAndTimeRotatingHandler(
            filename=str(tmp_path / "size.log"),
            max_bytes=10,
            when="midnight",
            encoding="utf-8",
        )
        try:
            record = logging.LogRecord("t", logging.INFO, __file__, 1, "x" * 20, None, None)
            assert handler.shouldRollover(record) == 0
            handler.emit(record)
            assert handler.shouldRollover(record) == 1
        finally:
            handler.close()
