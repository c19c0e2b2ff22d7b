"""Tests for structured logging setup."""

import json
import logging

import structlog

from courier.logging import (
    bind_context,
    clear_context,
    configure_logging,
    delivery_context,
    get_logger,
    unbind_context,
)


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_sets_level(self):
        configure_logging(level="WARNING", format="text")
        assert logging.getLogger().level == logging.WARNING
        configure_logging(level="INFO", format="text")

    def test_json_renders_stdlib_records(self, capsys):
        """Engine modules log through stdlib; their records come out as JSON."""
        configure_logging(level="INFO", format="json")
        logging.getLogger("courier.webhooks.executor").info("Webhook delivered: %s", "dlv_1")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "Webhook delivered: dlv_1"
        assert record["level"] == "info"
        assert record["logger"] == "courier.webhooks.executor"
        configure_logging(level="INFO", format="text")

    def test_get_logger(self):
        assert get_logger("courier.test") is not None


class TestContext:
    """Tests for context binding helpers."""

    def test_bind_and_unbind(self):
        clear_context()
        bind_context(worker_id="wrk_1", sweep=3)
        assert structlog.contextvars.get_contextvars() == {"worker_id": "wrk_1", "sweep": 3}

        unbind_context("sweep")
        assert structlog.contextvars.get_contextvars() == {"worker_id": "wrk_1"}
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_delivery_context_is_scoped(self):
        clear_context()
        with delivery_context("dlv_1", "whk_1"):
            assert structlog.contextvars.get_contextvars() == {
                "delivery_id": "dlv_1",
                "webhook_id": "whk_1",
            }
        assert structlog.contextvars.get_contextvars() == {}

    def test_delivery_ids_in_json_output(self, capsys):
        configure_logging(level="INFO", format="json")
        with delivery_context("dlv_7", "whk_7"):
            logging.getLogger("courier.webhooks.executor").info("Attempting delivery")

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["delivery_id"] == "dlv_7"
        assert record["webhook_id"] == "whk_7"
        configure_logging(level="INFO", format="text")
