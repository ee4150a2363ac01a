import logging

from src.meshparam.logging_utils import (
    ENV_LOG_LEVEL,
    default_log_dir,
    format_exception_message,
    log_once,
    parse_log_level,
    reset_log_once,
    setup_logging,
)


def test_parse_log_level():
    assert parse_log_level("debug") == logging.DEBUG
    assert parse_log_level(" WARNING ") == logging.WARNING
    assert parse_log_level(logging.ERROR) == logging.ERROR
    assert parse_log_level("chatty") == logging.INFO
    assert parse_log_level(None) == logging.INFO


def test_default_log_dir_follows_xdg(monkeypatch, tmp_path):
    monkeypatch.setattr("os.name", "posix")
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path))
    assert default_log_dir() == tmp_path / "meshparam" / "logs"


def test_log_once_emits_a_key_once(caplog):
    logger = logging.getLogger("test.log_once")
    reset_log_once(["test:key"])
    with caplog.at_level(logging.WARNING, logger="test.log_once"):
        assert log_once(logger, "test:key", logging.WARNING, "first %d", 1)
        assert not log_once(logger, "test:key", logging.WARNING, "second %d", 2)
    assert [r.getMessage() for r in caplog.records] == ["first 1"]

    reset_log_once(["test:key"])
    assert log_once(logger, "test:key", logging.WARNING, "again")


def test_setup_logging_is_idempotent(monkeypatch, tmp_path):
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)
    monkeypatch.setenv(ENV_LOG_LEVEL, "debug")

    path = setup_logging(log_dir=tmp_path, filename="run.log")
    try:
        assert path == tmp_path / "run.log"
        assert root.level == logging.DEBUG
        assert setup_logging(log_dir=tmp_path / "other") == path
        file_handlers = [h for h in root.handlers if isinstance(h, logging.FileHandler)]
        assert len(file_handlers) == 1
        logging.getLogger("test.setup").warning("hello file")
        file_handlers[0].flush()
        assert "hello file" in path.read_text(encoding="utf-8")
    finally:
        for handler in list(root.handlers):
            handler.close()
        logging.captureWarnings(False)


def test_format_exception_message(tmp_path):
    assert format_exception_message("Error:", "boom", log_path=None) == "Error:\n\nboom"
    text = format_exception_message("Error:", "boom", log_path=tmp_path / "x.log")
    assert text.endswith(f"(log file: {tmp_path / 'x.log'})")
