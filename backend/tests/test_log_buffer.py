"""Test the in-memory log buffer functionality."""
import logging


def test_log_buffer_basic_operations():
    from backend.fetcher.utils.log_buffer import LogBuffer

    buf = LogBuffer(max_lines=10)
    assert len(buf) == 0
    assert buf.get_lines() == []

    buf.info("Message 1")
    buf.warning("Message 2")
    buf.error("Message 3")

    lines = buf.get_lines()
    assert len(lines) == 3
    assert "[INFO] Message 1" in lines[0]
    assert "[WARN] Message 2" in lines[1]
    assert "[ERROR] Message 3" in lines[2]


def test_log_buffer_circular_behavior():
    from backend.fetcher.utils.log_buffer import LogBuffer

    buf = LogBuffer(max_lines=3)
    for word in ("First", "Second", "Third", "Fourth", "Fifth"):
        buf.info(word)

    lines = buf.get_lines()
    assert len(lines) == 3
    assert "Third" in lines[0]
    assert "Fifth" in lines[2]


def test_log_buffer_max_lines_adjustment():
    from backend.fetcher.utils.log_buffer import LogBuffer

    buf = LogBuffer(max_lines=20)
    for i in range(20):
        buf.info(f"Message {i}")

    buf.max_lines = 15
    assert buf.max_lines == 15
    lines = buf.get_lines()
    assert len(lines) == 15
    assert "Message 5" in lines[0]
    assert "Message 19" in lines[-1]

    # Setting below minimum should clamp to 10
    buf.max_lines = 3
    assert buf.max_lines == 10
    assert len(buf) == 10


def test_log_buffer_get_count_and_clear():
    from backend.fetcher.utils.log_buffer import LogBuffer

    buf = LogBuffer(max_lines=10)
    for i in range(5):
        buf.info(f"Message {i}")

    lines = buf.get_lines(count=2)
    assert len(lines) == 2
    assert "Message 3" in lines[0]
    assert "Message 4" in lines[1]

    buf.clear()
    assert buf.get_lines() == []


def test_handler_copies_records_into_buffer():
    from backend.fetcher.utils.log_buffer import LogBuffer, LogBufferHandler

    buf = LogBuffer(max_lines=10)
    log = logging.getLogger("backend.fetcher.test_handler")
    handler = LogBufferHandler(buf, level=logging.INFO)
    log.addHandler(handler)
    try:
        log.setLevel(logging.DEBUG)
        log.debug("hidden")
        log.warning("strategy %s failed", "direct")
    finally:
        log.removeHandler(handler)

    lines = buf.get_lines()
    assert len(lines) == 1
    assert "[WARN] [backend.fetcher.test_handler] strategy direct failed" in lines[0]


def test_buffer_handler_factory_targets_global_buffer():
    from backend.fetcher.utils.log_buffer import LogBufferHandler, acquisition_logs, make_buffer_handler

    handler = make_buffer_handler()
    assert isinstance(handler, LogBufferHandler)
    before = len(acquisition_logs)
    handler.handle(logging.makeLogRecord({"name": "x", "levelno": logging.INFO, "msg": "hello"}))
    assert len(acquisition_logs) == min(before + 1, acquisition_logs.max_lines)
