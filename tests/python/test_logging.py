from __future__ import annotations

import logging

import pytest

from corporate_spend_policy.log import configure_logging


@pytest.fixture()
def bare_root_logger():
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    root.handlers = []
    yield root
    root.handlers = saved_handlers
    root.setLevel(saved_level)


def test_configure_logging_is_idempotent(bare_root_logger: logging.Logger) -> None:
    configure_logging("DEBUG")
    configure_logging("DEBUG")

    assert len(bare_root_logger.handlers) == 1
    assert bare_root_logger.level == logging.DEBUG
    formatter = bare_root_logger.handlers[0].formatter
    assert formatter is not None
    assert formatter._fmt == "%(asctime)s %(levelname)s %(name)s %(message)s"


def test_engine_logs_outcome_with_correlation_id(
    engine, context_factory, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="corporate_spend_policy.engine"):
        engine.evaluate(context_factory(), correlation_id="corr_logged")

    assert "outcome=Allowed" in caplog.text
    assert "corr_logged" in caplog.text
