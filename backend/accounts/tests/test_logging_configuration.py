import io
import json
import logging
import sys

from backend.accounts.app import logging as logging_config


def _restore(original_stdout, original_handlers) -> None:
    sys.stdout = original_stdout
    logging_config.setup_logging(level="INFO")
    root = logging.getLogger()
    root.handlers = list(original_handlers)


def test_setup_logging_installs_single_stdout_handler():
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    try:
        root.handlers = [logging.StreamHandler(io.StringIO()), logging.StreamHandler(io.StringIO())]

        logging_config.setup_logging(level="debug")

        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG
    finally:
        _restore(sys.stdout, original_handlers)


def test_structured_events_include_bound_context():
    original_stdout = sys.stdout
    original_handlers = list(logging.getLogger().handlers)
    buffer = io.StringIO()
    sys.stdout = buffer
    try:
        logging_config.setup_logging(level="INFO")
        logging_config.bind_contextvars(request_id="req-42")
        logging_config.get_logger("accounts.test").info("login_succeeded", user_id="u-1")
        logging_config.get_logger("accounts.test").debug("dropped_below_level")
    finally:
        logging_config.clear_contextvars()
        _restore(original_stdout, original_handlers)

    lines = [json.loads(line) for line in buffer.getvalue().splitlines() if line.strip()]
    assert len(lines) == 1
    event = lines[0]
    assert event["event"] == "login_succeeded"
    assert event["user_id"] == "u-1"
    assert event["request_id"] == "req-42"
    assert event["level"] == "info"
    assert "timestamp" in event
