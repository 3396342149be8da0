import json
import logging

from ticket_manager.shared.infrastructure.logging import (
    CustomJsonFormatter,
    correlation_id_var,
    get_context_logger,
)


def _format(**extra) -> dict:
    formatter = CustomJsonFormatter("%(levelname)s %(message)s", environment="staging")
    record = logging.LogRecord("tickets", logging.INFO, __file__, 1, "Ticket created", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(formatter.format(record))


def test_formatter_adds_context_fields():
    token = correlation_id_var.set("req-42")
    try:
        payload = _format(ticket_id=7)
    finally:
        correlation_id_var.reset(token)

    assert payload["message"] == "Ticket created"
    assert payload["ticket_id"] == 7
    assert payload["correlation_id"] == "req-42"
    assert payload["environment"] == "staging"
    assert "timestamp" in payload


def test_formatter_redacts_secrets():
    payload = _format(db_password="hunter2", api_key="abc")

    assert payload["db_password"] == "***REDACTED***"
    assert payload["api_key"] == "***REDACTED***"


def test_context_logger_merges_correlation_id_into_extra(caplog):
    log = get_context_logger("ticket_manager.tests", "req-7")

    with caplog.at_level(logging.INFO, logger="ticket_manager.tests"):
        log.info("Ticket updated", extra={"ticket_id": 3})

    record = caplog.records[-1]
    assert record.correlation_id == "req-7"
    assert record.ticket_id == 3


def test_context_logger_without_id_is_plain_logger():
    assert isinstance(get_context_logger("ticket_manager.tests"), logging.Logger)
