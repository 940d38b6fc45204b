import json
import logging

from vidtag.core.logging_util import setup_logging


def test_json_logs_go_to_file(tmp_path):
    previous = logging.getLogger().level
    log_file = tmp_path / "logs" / "vtag.log"
    setup_logging(json_logs=True, quiet=True, log_file=log_file)
    try:
        logging.getLogger("vidtag.test").warning("wrote %s", "clip.mp4", extra={"file_path": "/v/clip.mp4"})
        logging.getLogger("vidtag.test").info("hidden in quiet mode")
        for handler in logging.getLogger().handlers:
            handler.flush()
        lines = log_file.read_text(encoding="utf-8").splitlines()
    finally:
        for handler in list(logging.getLogger().handlers):
            handler.close()
        logging.getLogger().handlers.clear()
        logging.getLogger().setLevel(previous)

    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["level"] == "WARNING"
    assert record["message"] == "wrote clip.mp4"
    assert record["file"] == "/v/clip.mp4"


def test_verbose_sets_debug_level():
    previous = logging.getLogger().level
    setup_logging(verbose=True)
    try:
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("dynaconf").level == logging.WARNING
    finally:
        logging.getLogger().handlers.clear()
        logging.getLogger().setLevel(previous)
