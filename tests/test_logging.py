"""
Tests for logger setup and package-wide log level configuration.
"""

from pathlib import Path
import logging
import sys

sys.path.append(str(Path(__file__).parent.parent / "src"))

from surface_stitching.utils.logging import configure_logging, setup_logger


def test_setup_logger_is_idempotent():
    first = setup_logger("surface_stitching.tests.idempotent")
    second = setup_logger("surface_stitching.tests.idempotent")
    assert first is second
    assert len(first.handlers) == 1
    assert first.propagate is False


def test_configure_logging_relevels_package_loggers(tmp_path):
    log_file = tmp_path / "logs" / "stitch.log"
    logger = setup_logger("surface_stitching.tests.relevel")
    other = setup_logger("another_package.module")

    configure_logging("DEBUG", str(log_file))
    logger.debug("registration details")

    assert logger.level == logging.DEBUG
    assert other.level == logging.INFO
    assert any(isinstance(h, logging.FileHandler) for h in logger.handlers)
    for handler in logger.handlers:
        handler.flush()
    assert "registration details" in log_file.read_text(encoding="utf-8")

    configure_logging(logging.INFO)
    assert logger.level == logging.INFO

    # Detach the file handlers so later tests do not write to this tmp_path
    for name in list(logging.Logger.manager.loggerDict):
        if name.startswith("surface_stitching"):
            package_logger = logging.getLogger(name)
            for handler in [h for h in package_logger.handlers if isinstance(h, logging.FileHandler)]:
                package_logger.removeHandler(handler)
                handler.close()
