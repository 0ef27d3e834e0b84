# tests/observers/test_observers.py
import json
import logging

from metalprov.logging.log import init_logging, object_logger
from metalprov.observers.dispatcher import EventBus
from metalprov.observers.events import HardwareSelected, TeardownCompleted, new_ctx
from metalprov.observers.jsonfile import JsonFileObserver
from metalprov.observers.logger import LoggerObserver


class Broken:
    def notify(self, event):
        raise RuntimeError("disk full")


class Recording:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


def _selected():
    return HardwareSelected(**new_ctx("run-1", "default", "m1"), hardware="hw-a", recovered=False)


def test_new_ctx_generates_run_id_when_missing():
    ctx = new_ctx(None, "default", "m1")
    assert ctx["run_id"]
    assert ctx["ts"].endswith("Z")
    assert ctx["machine"] == "m1"


def test_bus_keeps_going_when_an_observer_fails():
    rec = Recording()
    bus = EventBus([Broken(), rec])

    bus.emit(_selected())

    assert [e.hardware for e in rec.events] == ["hw-a"]


def test_json_file_observer_writes_one_line_per_event(tmp_path):
    path = tmp_path / "events" / "metalprov.jsonl"
    ob = JsonFileObserver(path)

    ob.notify(_selected())
    ob.notify(TeardownCompleted(**new_ctx("run-1", "default", "m1")))

    lines = [json.loads(line) for line in path.read_text().splitlines()]
    assert [line["type"] for line in lines] == ["HardwareSelected", "TeardownCompleted"]
    assert lines[0]["hardware"] == "hw-a"
    assert lines[1]["hardware"] is None


def test_logger_observer_drops_run_metadata():
    messages = []

    class Capture(logging.Handler):
        def emit(self, record):
            messages.append(record.getMessage())

    logger = logging.getLogger("metalprov-test-observer")
    logger.addHandler(Capture())
    logger.setLevel(logging.INFO)

    LoggerObserver(logger).notify(_selected())

    [msg] = messages
    assert msg.startswith("[EVENT] HardwareSelected:")
    assert "hardware=hw-a" in msg
    assert "run_id" not in msg


def test_init_logging_writes_a_run_file(tmp_path):
    logger, run_id, log_path = init_logging(base_dir=tmp_path, name="metalprov-test-init")
    logger.debug("trace line")
    for h in logger.handlers:
        h.flush()

    assert log_path.parent == tmp_path
    assert run_id in log_path.name
    text = log_path.read_text()
    assert f"run_id={run_id}" in text
    assert "trace line" in text

    for h in list(logger.handlers):
        h.close()
        logger.removeHandler(h)


def test_object_logger_prefixes_messages():
    adapter = object_logger("TinkerbellMachine", "default/m1")
    msg, _ = adapter.process("selected hardware", {})
    assert msg == "[TinkerbellMachine default/m1] selected hardware"
