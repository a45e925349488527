# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import re
import json
import logging

import pytest

from common.logging import operations, splunk
from issuer.logging import IssuerOperationsLogEntry
from verifier.logging import VerifierOperationsLogEntry


@pytest.fixture()
def formatted_caplog(caplog):
    formatter = splunk.SplunkFormatter(
        defaults={
            "app_name": "test_app",
            "correlation_id": "test",
        }
    )
    caplog.handler.setFormatter(formatter)
    return caplog


def _test_formatted_log(data_str: str, expected_message: str | bool, expected_level: str) -> dict:
    data: dict[str, object] = json.loads(data_str)
    keys = data.keys()
    assert "message" in keys
    if expected_message is not False:
        assert data["message"] == expected_message
    assert "level" in keys
    assert data["level"] == expected_level
    assert "hash" in keys
    assert data["hash"] == "test"  # set in the fixture defaults
    assert "@timestamp" in data.keys()
    # Expected format: 2024-02-07T14:38:19.565+01:00
    assert re.match(
        r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}(\.[0-9]{1,6})?[+-][0-9]{2}:[0-9]{2}",
        data["@timestamp"],
    )
    assert "app" in keys
    assert data["app"] == "test_app"
    return data


def test_formatter(formatted_caplog):

    logger = logging.getLogger(f"{__name__}_test_formatter")

    with formatted_caplog.at_level("DEBUG"):
        for level, message in [
            (logging.ERROR, "ERROR message for testing"),
            (logging.WARNING, "WARN message for testing"),
            (logging.INFO, "INFO message for testing"),
            (logging.DEBUG, "DEBUG message for testing"),
        ]:
            formatted_caplog.clear()
            logger.log(level, message)
            assert len(formatted_caplog.records) == 1
            _test_formatted_log(formatted_caplog.text, message, logging.getLevelName(level))


def test_operations_formatter(formatted_caplog):

    with formatted_caplog.at_level("INFO"):
        formatted_caplog.clear()
        logger = logging.getLogger(__name__ + ":test_operations_formatter")
        logger.info(
            operations.OperationsLogEntry(
                message="Operations message for testing.",
                operation=operations.OperationsLogEntry.Operation.only_test,
                step=operations.OperationsLogEntry.Step.only_test,
                status=operations.OperationsLogEntry.Status.success,
            )
        )
        assert len(formatted_caplog.records) == 1
        data = _test_formatted_log(
            formatted_caplog.text,
            "Operations message for testing. status=SUCCESS operation=ONLY_TEST step=ONLY_TEST",
            "INFO",
        )
        assert data["operation"] == "ONLY_TEST"
        assert data["step"] == "ONLY_TEST"
        assert data["status"] == "SUCCESS"
        assert "session_id" not in data, "Unset fields are not logged"


def test_component_operations_entries(formatted_caplog):

    with formatted_caplog.at_level("INFO"):
        logger = logging.getLogger(__name__ + ":test_component_operations_entries")

        formatted_caplog.clear()
        logger.info(
            IssuerOperationsLogEntry(
                message="Credential issued.",
                status=IssuerOperationsLogEntry.Status.success,
                step=IssuerOperationsLogEntry.Step.issuance_delivery,
                session_id="abc",
            )
        )
        data = _test_formatted_log(formatted_caplog.text, False, "INFO")
        assert data["operation"] == "ISSUANCE"
        assert data["step"] == "DELIVERY"
        assert data["session_id"] == "abc"

        formatted_caplog.clear()
        logger.warning(
            VerifierOperationsLogEntry(
                message="Presentation rejected.",
                status=VerifierOperationsLogEntry.Status.error,
                step=VerifierOperationsLogEntry.Step.verification_evaluation,
                error_code="expired",
            )
        )
        data = _test_formatted_log(formatted_caplog.text, False, "WARNING")
        assert data["operation"] == "VERIFICATION"
        assert data["error_code"] == "expired"


def test_exception_formatter(formatted_caplog):

    logger = logging.getLogger(f"{__name__}_test_exception_formatter")

    with formatted_caplog.at_level("DEBUG"):
        formatted_caplog.clear()

        try:
            raise Exception("Test")
        except Exception:
            logger.exception("Test message")

        assert len(formatted_caplog.records) == 1
        _test_formatted_log(
            formatted_caplog.text,
            "Test message",
            "ERROR",
        )
        assert "Traceback" in formatted_caplog.text
