"""Tests for dvspine.core.logging — structlog configuration and scoped context."""

from __future__ import annotations

import pytest
import structlog

from dvspine.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


@pytest.fixture(autouse=True)
def _reset_context():
    clear_context()
    yield
    clear_context()
    structlog.reset_defaults()


class TestContext:
    """bind / unbind / LogContext."""

    def test_bind_and_unbind(self):
        bind_context(entity="toba_batch", step="ensure")
        assert structlog.contextvars.get_contextvars() == {"entity": "toba_batch", "step": "ensure"}
        unbind_context("step")
        assert structlog.contextvars.get_contextvars() == {"entity": "toba_batch"}

    def test_log_context_sync(self):
        with LogContext(collection="toba_batches"):
            assert structlog.contextvars.get_contextvars()["collection"] == "toba_batches"
        assert "collection" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_log_context_async(self):
        async with LogContext(workflow="persist_batch"):
            assert structlog.contextvars.get_contextvars()["workflow"] == "persist_batch"
        assert structlog.contextvars.get_contextvars() == {}


class TestConfigure:
    """configure_logging output."""

    def test_json_output_goes_to_stderr(self, capsys):
        configure_logging(level="INFO", json_format=True, service="dvspine-test")
        get_logger("dvspine.test").info("writer.created", record_id="r-1")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert '"event": "writer.created"' in captured.err
        assert '"service.name": "dvspine-test"' in captured.err

    def test_level_filters(self, capsys):
        configure_logging(level="WARNING", json_format=True)
        get_logger("dvspine.test").info("quiet")
        assert "quiet" not in capsys.readouterr().err

    def test_tokens_masked(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("dvspine.test").info("client.ready", access_token="eyJ-secret", scope="x/.default")
        err = capsys.readouterr().err
        assert "eyJ-secret" not in err
        assert '"access_token": "***"' in err
        assert '"scope": "x/.default"' in err
