import json

from aptkeeper.events import EventLog, emit, event


def test_event_omits_empty_fields():
    assert event(action="scan", ok=True) == {"action": "scan", "ok": True}
    assert event(action="apply", ok=False, details={"a": 1}, error="boom") == {
        "action": "apply",
        "ok": False,
        "details": {"a": 1},
        "error": "boom",
    }


def test_event_log_appends_json_lines(tmp_path):
    log = EventLog.at(tmp_path / "sub" / "events.jsonl")
    log.log({"action": "one", "ok": True})
    emit(log.log, action="two", ok=False, error="bad")
    rows = [json.loads(line) for line in log.path.read_text(encoding="utf-8").splitlines()]
    assert [r["action"] for r in rows] == ["one", "two"]
    assert all("ts" in r for r in rows)
    assert rows[1]["error"] == "bad"


def test_emit_without_sink_is_harmless():
    emit(None, action="noop")
