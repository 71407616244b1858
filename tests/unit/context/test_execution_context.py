"""Tests for ExecutionContext and context storage."""

import logging
from dataclasses import FrozenInstanceError

import pytest

from sluice.context import (
    ExecutionContext,
    clear_context,
    get_context,
    log_extra,
    reset_context,
    set_context,
)


def test_default_context_is_empty():
    ctx = get_context()

    assert ctx == ExecutionContext()
    assert ctx.as_extra() == {}


def test_for_message():
    ctx = ExecutionContext(connection_id="conn-1").for_message("m1")

    assert ctx.message_id == "m1"
    assert ctx.connection_id == "conn-1"


def test_for_function():
    ctx = ExecutionContext(message_id="m1").for_function("builtin.destination.bulker")

    assert ctx.message_id == "m1"
    assert ctx.function_id == "builtin.destination.bulker"


def test_context_immutability():
    ctx = ExecutionContext(message_id="m1")

    with pytest.raises(FrozenInstanceError):
        ctx.message_id = "m2"  # type: ignore[misc]


def test_set_and_reset_context():
    outer = ExecutionContext(message_id="outer")
    set_context(outer)
    token = set_context(outer.for_message("inner"))

    assert get_context().message_id == "inner"

    reset_context(token)
    assert get_context() == outer

    clear_context()
    assert get_context() == ExecutionContext()


def test_log_extra_merges_context():
    set_context(ExecutionContext(message_id="m1", connection_id="conn-1"))

    assert log_extra(table="pages") == {
        "message_id": "m1",
        "connection_id": "conn-1",
        "table": "pages",
    }
    assert log_extra(message_id="m2")["message_id"] == "m2"


def test_log_records_carry_message_id(caplog):
    set_context(ExecutionContext(message_id="m1"))
    logger = logging.getLogger("sluice.test")

    with caplog.at_level(logging.INFO, logger="sluice.test"):
        logger.info("hello", extra=log_extra())

    assert caplog.records[0].message_id == "m1"
