import json
import logging

from app.logging_config import JSONFormatter, LoggerAdapter, append_json_line, get_logger, setup_logging


def make_record(msg="hello", **attrs):
    record = logging.LogRecord("relay.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_includes_context_and_service(self):
        payload = json.loads(JSONFormatter("WhatsApp Server").format(make_record(context={"user_id": 7})))

        assert payload["msg"] == "hello"
        assert payload["logger"] == "relay.test"
        assert payload["service"] == "WhatsApp Server"
        assert payload["context"] == {"user_id": 7}

    def test_invisible_characters_are_escaped(self):
        line = JSONFormatter().format(make_record("​hola‌"))

        assert "\\u200b" in line
        assert "​" not in line
        assert json.loads(line)["msg"] == "​hola‌"


class TestLoggerAdapter:
    def test_merges_bound_and_call_context(self):
        adapter = LoggerAdapter(get_logger("test"), {"session_id": "default"})
        msg, kwargs = adapter.process("routed", {"context": {"outcome": "replied"}})

        assert msg == "routed"
        assert kwargs["extra"]["context"] == {"session_id": "default", "outcome": "replied"}

    def test_bind_adds_fields_without_changing_parent(self):
        parent = LoggerAdapter(get_logger("test"), {"session_id": "default"})
        child = parent.bind(user_id=3)

        _, kwargs = child.process("x", {})
        assert kwargs["extra"]["context"] == {"session_id": "default", "user_id": 3}
        assert parent.extra == {"session_id": "default"}


class TestSetupLogging:
    def test_second_call_replaces_only_its_own_handler(self):
        root = logging.getLogger()
        foreign = logging.NullHandler()
        root.addHandler(foreign)
        try:
            first = setup_logging("INFO")
            second = setup_logging("DEBUG")

            assert first not in root.handlers
            assert second in root.handlers
            assert foreign in root.handlers
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.removeHandler(foreign)
            root.removeHandler(second)
            root.setLevel(logging.WARNING)


class TestAppendJsonLine:
    def test_appends_one_record_per_line(self, tmp_path):
        path = tmp_path / "messages.log"
        append_json_line(path, {"phone": "521", "text": "hola"})
        append_json_line(path, {"phone": "522", "text": "adiós"})

        lines = path.read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["phone"] for line in lines] == ["521", "522"]
        assert "adiós" in lines[1]

    def test_never_raises(self, tmp_path):
        append_json_line(tmp_path / "missing" / "messages.log", {"phone": "521"})
