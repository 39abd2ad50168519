"""Tests for identity-aware log formatting."""

import json
import logging

import pytest

from services.logging_config import (
    ContextLogger,
    IdentityContextFilter,
    JsonFormatter,
    ReadableFormatter,
    get_logger,
    impersonator_id_var,
    principal_id_var,
    request_id_var,
)


@pytest.fixture
def identity():
    tokens = [
        (request_id_var, request_id_var.set("req-0123456789")),
        (principal_id_var, principal_id_var.set("user-1")),
        (impersonator_id_var, impersonator_id_var.set("op-9")),
    ]
    yield
    for var, token in reversed(tokens):
        var.reset(token)


def _record(message="hello", **extra_data):
    record = logging.LogRecord("tenancy.test", logging.INFO, __file__, 1, message, None, None)
    if extra_data:
        record.extra_data = extra_data
    IdentityContextFilter().filter(record)
    return record


class TestFormatters:

    def test_json_carries_identity_and_extras(self, identity):
        payload = json.loads(JsonFormatter().format(_record(component="ops")))

        assert payload["msg"] == "hello"
        assert payload["request_id"] == "req-0123456789"
        assert payload["principal_id"] == "user-1"
        assert payload["impersonator_id"] == "op-9"
        assert payload["component"] == "ops"

    def test_json_omits_unset_identity(self):
        payload = json.loads(JsonFormatter().format(_record()))
        assert "principal_id" not in payload
        assert "impersonator_id" not in payload

    def test_readable_tags_impersonation(self, identity):
        line = ReadableFormatter().format(_record(k="v"))

        assert "[req=req-0123 who=user-1 via=op-9]" in line
        assert line.endswith("hello | k=v")


class TestContextLogger:

    def test_fixed_fields_merge_with_call_extras(self):
        adapter = get_logger("tenancy.test", component="admin_operations")
        assert isinstance(adapter, ContextLogger)

        _, kwargs = adapter.process("msg", {"extra": {"extra_data": {"account": "a-1"}}})

        assert kwargs["extra"]["extra_data"] == {"component": "admin_operations", "account": "a-1"}
