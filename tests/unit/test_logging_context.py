import json
import logging
from unittest.mock import patch

import pytest

from bulkload.utils import logging as logging_module
from bulkload.utils.logging import configure_logging
from bulkload.utils.logging_context import (
    LoggingContext,
    OperationMetrics,
    OperationType,
    StructuredLogger,
    create_logging_context,
    get_logging_context,
    set_logging_context,
)


@pytest.fixture(autouse=True)
def suppress_bulkload_logging():
    logger = logging.getLogger("bulkload")
    old_propagate = logger.propagate
    logger.propagate = False
    yield
    logger.propagate = old_propagate


class TestOperationMetrics:
    def test_elapsed_ms_none_when_no_end_time(self):
        m = OperationMetrics()
        assert m.elapsed_ms is None

    def test_elapsed_ms_correct_value(self):
        m = OperationMetrics(start_time=10.0, end_time=10.5)
        assert m.elapsed_ms == pytest.approx(500.0)

    def test_row_delta_none_when_rows_in_none(self):
        m = OperationMetrics(rows_out=100)
        assert m.row_delta is None

    def test_row_delta_correct_value(self):
        m = OperationMetrics(rows_in=100, rows_out=80)
        assert m.row_delta == -20

    def test_to_dict_only_non_none_fields(self):
        assert OperationMetrics().to_dict() == {}

    def test_to_dict_all_fields_populated(self):
        m = OperationMetrics(
            start_time=1.0, end_time=2.0, rows_in=100, rows_out=90, extra={"chunk": 3}
        )
        d = m.to_dict()
        assert d["elapsed_ms"] == pytest.approx(1000.0)
        assert d["rows_in"] == 100
        assert d["rows_out"] == 90
        assert d["row_delta"] == -10
        assert d["chunk"] == 3


class TestStructuredLogger:
    def test_init_default(self):
        logger = StructuredLogger()
        assert logger.structured is False
        assert logger.level == logging.INFO
        assert len(logger._secrets) == 0

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_register_secret_ignores_invalid(self, value):
        logger = StructuredLogger(structured=True)
        logger.register_secret(value)
        assert len(logger._secrets) == 0

    def test_redact_replaces_secrets(self):
        logger = StructuredLogger(structured=True)
        logger.register_secret("password123")
        result = logger._redact("connecting with password123 to host")
        assert result == "connecting with [REDACTED] to host"

    def test_structured_info_prints_json(self, capsys):
        logger = StructuredLogger(structured=True, level="DEBUG")
        logger.info("test message", key="val")
        parsed = json.loads(capsys.readouterr().out.strip())
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "test message"
        assert parsed["key"] == "val"
        assert "timestamp" in parsed

    def test_human_readable_warning(self):
        logger = StructuredLogger(structured=False)
        with patch.object(logger.logger, "warning") as mock_warn:
            logger.warning("watch out")
            mock_warn.assert_called_once_with("[WARN] watch out")

    def test_human_readable_with_kwargs(self):
        logger = StructuredLogger(structured=False)
        with patch.object(logger.logger, "info") as mock_info:
            logger.info("msg", key="val", num=42)
            call_arg = mock_info.call_args[0][0]
            assert call_arg == "msg (key=val, num=42)"

    def test_log_below_level_skipped(self, capsys):
        logger = StructuredLogger(structured=True, level="WARNING")
        logger.info("should not appear")
        assert capsys.readouterr().out == ""

    def test_sqlalchemy_never_more_verbose_than_warning(self):
        StructuredLogger(structured=True, level="DEBUG")
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


class TestModuleLevelFunctions:
    def setup_method(self):
        import bulkload.utils.logging_context as mod

        mod._global_context = None

    def teardown_method(self):
        import bulkload.utils.logging_context as mod

        mod._global_context = None

    def test_get_logging_context_returns_logging_context(self):
        ctx = get_logging_context()
        assert isinstance(ctx, LoggingContext)
        assert get_logging_context() is ctx

    def test_set_and_get_logging_context_roundtrip(self):
        custom = LoggingContext(logger=StructuredLogger(structured=True), node_name="n1")
        set_logging_context(custom)
        retrieved = get_logging_context()
        assert retrieved is custom
        assert retrieved.node_name == "n1"

    def test_create_logging_context_with_params(self):
        ctx = create_logging_context(node_name="load_items", table="items")
        assert ctx.node_name == "load_items"
        assert ctx.table == "items"

    def test_configure_logging_installs_context(self):
        original = logging_module.logger
        try:
            logger = configure_logging(structured=True, level="DEBUG")
            assert logging_module.logger is logger
            assert get_logging_context().logger is logger
        finally:
            logging_module.logger = original


class TestLoggingContext:
    @pytest.fixture
    def ctx(self):
        logger = StructuredLogger(structured=True, level="DEBUG")
        return LoggingContext(logger=logger, node_name="load_items", table="items")

    def test_logger_property_fallback_when_none(self):
        ctx = LoggingContext(logger=None)
        assert ctx.logger is logging_module.logger

    def test_base_context_with_all_fields(self, ctx):
        bc = ctx._base_context()
        assert bc["node"] == "load_items"
        assert bc["table"] == "items"
        assert "timestamp" in bc

    def test_base_context_minimal(self):
        bc = LoggingContext(logger=StructuredLogger(structured=True))._base_context()
        assert "node" not in bc
        assert "table" not in bc

    def test_with_context_creates_new(self, ctx):
        new_ctx = ctx.with_context(table="orders")
        assert new_ctx.table == "orders"
        assert new_ctx.node_name == "load_items"
        assert new_ctx is not ctx
        assert new_ctx.logger is ctx.logger

    def test_context_manager_logs_exception(self, ctx, capsys):
        with pytest.raises(ValueError):
            with ctx:
                raise ValueError("boom")
        assert "boom" in capsys.readouterr().out

    def test_info_logs_with_context(self, ctx, capsys):
        ctx.info("hello", rows=3)
        parsed = json.loads(capsys.readouterr().out.strip())
        assert parsed["message"] == "hello"
        assert parsed["node"] == "load_items"
        assert parsed["table"] == "items"
        assert parsed["rows"] == 3

    def test_operation_context_manager_success(self, ctx, capsys):
        with ctx.operation(OperationType.CHUNK, "chunk 0", rows_in=2) as metrics:
            metrics.rows_out = 2
        lines = [json.loads(line) for line in capsys.readouterr().out.strip().split("\n")]
        assert lines[0]["message"] == "Starting chunk: chunk 0"
        assert lines[-1]["message"] == "Completed chunk: chunk 0"
        assert lines[-1]["rows_out"] == 2
        assert "elapsed_ms" in lines[-1]

    def test_operation_context_manager_exception(self, ctx, capsys):
        with pytest.raises(RuntimeError):
            with ctx.operation(OperationType.BRACKET, "pre-SQL"):
                raise RuntimeError("oops")
        lines = [json.loads(line) for line in capsys.readouterr().out.strip().split("\n")]
        failed = lines[-1]
        assert failed["level"] == "ERROR"
        assert failed["message"] == "Failed bracket: pre-SQL"
        assert failed["error_type"] == "RuntimeError"
        assert failed["error_message"] == "oops"
