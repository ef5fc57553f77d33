import json
import logging
import os
import importlib.util

UTILS_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "zork_app", "utils", "logging_utils.py"))
spec = importlib.util.spec_from_file_location("logging_utils", UTILS_PATH)
logging_utils = importlib.util.module_from_spec(spec)
spec.loader.exec_module(logging_utils)
JsonFormatter = logging_utils.JsonFormatter


def make_record(msg="hola", **extra):
    record = logging.LogRecord(
        name="test_logger",
        level=logging.INFO,
        pathname="/tmp/test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
        func="test_func",
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_basic_fields():
    formatter = JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    data = json.loads(formatter.format(make_record()))
    assert data["level"] == "INFO"
    assert data["name"] == "test_logger"
    assert data["message"] == "hola"
    assert data["funcName"] == "test_func"
    assert data["line"] == 42
    assert "timestamp" in data
    assert "conversation_id" not in data


def test_json_formatter_includes_conversation_context():
    formatter = JsonFormatter()
    output = formatter.format(make_record("año nuevo", conversation_id="partida-1", thread_id="thread_9"))
    data = json.loads(output)
    assert data["conversation_id"] == "partida-1"
    assert data["thread_id"] == "thread_9"
    assert "run_id" not in data
    assert "año nuevo" in output


def test_build_logging_config_points_files_at_log_dir(tmp_path):
    config = logging_utils.build_logging_config(str(tmp_path), "debug")
    assert config["handlers"]["app_file"]["filename"] == os.path.join(str(tmp_path), "app.log")
    assert config["handlers"]["json_file"]["filename"] == os.path.join(str(tmp_path), "app.json")
    assert config["loggers"]["zork_app"]["level"] == "DEBUG"
    assert config["loggers"]["openai"]["level"] == "WARNING"


def test_setup_json_file_logger_writes(tmp_path):
    log_file = tmp_path / "app.json"
    handler = logging_utils.setup_json_file_logger(str(log_file))
    logger = logging.getLogger("test_setup_json_file_logger")
    logger.info("json hello", extra={"run_id": "run_1"})
    handler.flush()
    logging.getLogger().removeHandler(handler)
    handler.close()

    with open(log_file, "r", encoding="utf8") as f:
        line = json.loads(f.readline())

    assert line["message"] == "json hello"
    assert line["name"] == "test_setup_json_file_logger"
    assert line["run_id"] == "run_1"
