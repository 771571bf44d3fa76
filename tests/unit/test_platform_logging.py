import asyncio
import io
import logging

import pytest
import structlog

from maintflow.platform.logging import HANDLER_NAME, configure_logging, dispatch_context, get_logger


@pytest.fixture
def log_stream():
    configure_logging()
    root = logging.getLogger()
    handler = next(h for h in root.handlers if h.get_name() == HANDLER_NAME)
    stream = io.StringIO()
    handler.setStream(stream)
    yield stream
    for installed in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(installed)


def test_dispatch_context_binds_and_restores():
    with dispatch_context(company_id="company-1", trigger="creation"):
        assert structlog.contextvars.get_contextvars() == {"company_id": "company-1", "trigger": "creation"}
    assert "company_id" not in structlog.contextvars.get_contextvars()


@pytest.mark.asyncio
async def test_dispatch_context_isolated_between_tasks():
    seen = {}

    async def dispatch(company_id):
        with dispatch_context(company_id=company_id):
            await asyncio.sleep(0)
            seen[company_id] = structlog.contextvars.get_contextvars()["company_id"]

    await asyncio.gather(dispatch("a"), dispatch("b"))

    assert seen == {"a": "a", "b": "b"}


def test_stdlib_records_carry_dispatch_context(log_stream):
    with dispatch_context(company_id="company-42", trigger="completion"):
        logging.getLogger("maintflow.triggers.engine.executor").warning("action failed")
    logging.getLogger("maintflow.triggers.engine.executor").warning("outside dispatch")

    inside, outside = log_stream.getvalue().strip().splitlines()
    assert "action failed" in inside
    assert "company-42" in inside
    assert "completion" in inside
    assert "company-42" not in outside


def test_configure_logging_is_idempotent(log_stream):
    configure_logging()
    names = [h.get_name() for h in logging.getLogger().handlers]
    assert names.count(HANDLER_NAME) == 1


def test_get_logger_accepts_name():
    assert get_logger(__name__) is not None
