import logging

from treadmill_sync.logging import KIND_TX, LogBuffer, configure_logging


def _logger(buffer: LogBuffer) -> logging.Logger:
    logger = logging.getLogger("treadmill_sync.tests.buffer")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logger.handlers = [buffer]
    return logger


def test_log_buffer_tags_entries_by_kind():
    buffer = LogBuffer()
    logger = _logger(buffer)

    logger.info("Connected to %s", "ws://x", extra={"kind": "success"})
    logger.debug("-> %s", '{"type":"GET_STATE"}', extra={"kind": KIND_TX})
    logger.warning("Connection lost")
    logger.info("plain")

    entries = buffer.entries()
    assert [entry.kind for entry in entries] == ["info", "error", "tx", "success"]
    assert entries[-1].message == "Connected to ws://x"
    assert entries[0].as_dict()["type"] == "info"


def test_log_buffer_is_bounded_and_limited():
    buffer = LogBuffer(capacity=5)
    logger = _logger(buffer)

    for index in range(12):
        logger.info("entry %d", index)

    assert len(buffer.entries()) == 5
    assert [entry.message for entry in buffer.entries(2)] == ["entry 11", "entry 10"]

    buffer.clear()
    assert buffer.entries() == []


def test_configure_logging_attaches_buffer(tmp_path):
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    package_logger = logging.getLogger("treadmill_sync")
    buffer = LogBuffer()

    try:
        configure_logging("WARNING", log_path=tmp_path / "logs" / "sync.log", buffer=buffer)
        logging.getLogger("treadmill_sync.link").debug("-> probe")

        assert (tmp_path / "logs" / "sync.log").exists()
        assert [entry.message for entry in buffer.entries()] == ["-> probe"]
        assert all(handler.level == logging.WARNING for handler in root.handlers)
    finally:
        package_logger.removeHandler(buffer)
        package_logger.setLevel(logging.NOTSET)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
