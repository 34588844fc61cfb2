"""Tests for structured logging."""

import json
import logging

from surveybot.shared.locks import KeyedLocks
from surveybot.shared.logging import StructuredFormatter, correlation_id_var


def make_record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("surveybot.test", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_json_with_extra_fields(self) -> None:
        line = StructuredFormatter().format(make_record("Ветка выбрана", user_id=42))

        data = json.loads(line)
        assert data["message"] == "Ветка выбрана"
        assert data["level"] == "INFO"
        assert data["logger"] == "surveybot.test"
        assert data["user_id"] == 42
        assert "Ветка" in line

    def test_correlation_id_included(self) -> None:
        token = correlation_id_var.set("555")
        try:
            data = json.loads(StructuredFormatter().format(make_record("x")))
        finally:
            correlation_id_var.reset(token)

        assert data["correlation_id"] == "555"

    def test_no_correlation_id_outside_request(self) -> None:
        data = json.loads(StructuredFormatter().format(make_record("x")))

        assert "correlation_id" not in data

    def test_colliding_extra_is_prefixed(self) -> None:
        data = json.loads(StructuredFormatter().format(make_record("x", level="custom")))

        assert data["level"] == "INFO"
        assert data["extra_level"] == "custom"


class TestKeyedLocks:
    def test_same_key_same_lock(self) -> None:
        locks = KeyedLocks()

        assert locks.get(1) is locks.get("1")
        assert locks.get(1) is not locks.get(2)
        assert len(locks) == 2
