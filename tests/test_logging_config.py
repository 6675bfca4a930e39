"""Tests for structured logging, run tracing and performance timing."""

import asyncio
import json
import logging
import sys

import pytest

from bluegreen.logging_config.config import LogFormat, LoggingConfig, LogLevel, LogStream
from bluegreen.logging_config.context import (
    DeploymentContext,
    RequestContext,
    generate_request_id,
    get_context_dict,
    get_correlation_id,
    get_request_id,
    get_run_id,
)
from bluegreen.logging_config.middleware import (
    CORRELATION_ID_HEADER,
    REQUEST_ID_HEADER,
    RequestTracingMiddleware,
)
from bluegreen.logging_config.performance import PerformanceTimer, log_performance
from bluegreen.logging_config.setup import (
    ConsoleFormatter,
    StructuredFormatter,
    configure_logging,
)
from bluegreen.settings import Settings


def _record(msg="test", level=logging.INFO, name="test", lineno=1, exc_info=None):
    return logging.LogRecord(
        name=name, level=level, pathname="test.py",
        lineno=lineno, msg=msg, args=(), exc_info=exc_info,
    )


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestLoggingConfig:
    """Tests for logging configuration dataclasses."""

    def test_default_config_values(self):
        config = LoggingConfig()
        assert config.level == LogLevel.INFO
        assert config.format == LogFormat.JSON
        assert config.include_caller is True
        assert config.slow_threshold_ms == 1000.0
        assert config.service_name == "bluegreen"

    def test_exclude_paths_default(self):
        assert LoggingConfig().exclude_paths == ["/health"]

    def test_log_format_enum_values(self):
        assert LogFormat.JSON.value == "json"
        assert LogFormat.CONSOLE.value == "console"

    def test_logs_to_stderr_by_default(self):
        assert LoggingConfig().stream == LogStream.STDERR

    def test_from_settings(self):
        settings = Settings(_env_file=None, log_level="debug", log_format="CONSOLE")
        config = LoggingConfig.from_settings(settings)
        assert config.level == LogLevel.DEBUG
        assert config.format == LogFormat.CONSOLE

    def test_from_settings_ignores_unknown_values(self):
        settings = Settings(_env_file=None, log_level="chatty", log_format="xml")
        config = LoggingConfig.from_settings(settings)
        assert config.level == LogLevel.INFO
        assert config.format == LogFormat.JSON

    def test_from_settings_overrides(self):
        settings = Settings(_env_file=None, log_format="console")
        config = LoggingConfig.from_settings(
            settings, format=LogFormat.JSON, stream=LogStream.STDOUT, level=None
        )
        assert config.format == LogFormat.JSON
        assert config.stream == LogStream.STDOUT
        assert config.level == LogLevel.INFO


class TestContext:
    """Tests for request and run context binding."""

    def test_generate_request_id_unique(self):
        assert generate_request_id() != generate_request_id()

    def test_correlation_id_defaults_to_request_id(self):
        with RequestContext(request_id="req-1"):
            assert get_request_id() == "req-1"
            assert get_correlation_id() == "req-1"

    def test_auto_generates_request_id(self):
        with RequestContext() as ctx:
            assert len(ctx.request_id) == 36
            assert get_request_id() == ctx.request_id

    def test_context_cleanup_on_exit(self):
        with RequestContext(request_id="temp"):
            pass
        assert get_request_id() == ""

    def test_deployment_context(self):
        with DeploymentContext(run_id="run-1", application="shop", slot="green"):
            assert get_run_id() == "run-1"
            assert get_context_dict() == {
                "run_id": "run-1",
                "application": "shop",
                "slot": "green",
            }
        assert get_context_dict() == {}

    def test_nested_request_and_run(self):
        with RequestContext(request_id="outer"):
            with DeploymentContext(run_id="run-2"):
                ctx = get_context_dict()
                assert ctx["request_id"] == "outer"
                assert ctx["run_id"] == "run-2"
                assert "slot" not in ctx
            assert "run_id" not in get_context_dict()


class TestStructuredFormatter:
    """Tests for JSON structured log formatting."""

    def test_formats_as_json(self):
        parsed = json.loads(StructuredFormatter().format(_record("hello world")))
        assert parsed["message"] == "hello world"
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test"
        assert parsed["service"] == "bluegreen"
        assert "timestamp" in parsed

    def test_includes_caller_info(self):
        parsed = json.loads(StructuredFormatter().format(_record(lineno=42)))
        assert parsed["line"] == 42
        assert "function" in parsed

    def test_excludes_caller_when_disabled(self):
        formatter = StructuredFormatter(include_caller=False)
        parsed = json.loads(formatter.format(_record(lineno=42)))
        assert "line" not in parsed
        assert "module" not in parsed

    def test_includes_run_context(self):
        formatter = StructuredFormatter()
        with DeploymentContext(run_id="run-9", application="shop", slot="blue"):
            parsed = json.loads(formatter.format(_record()))
        assert parsed["run_id"] == "run-9"
        assert parsed["application"] == "shop"
        assert parsed["slot"] == "blue"

    def test_formats_exception(self):
        formatter = StructuredFormatter()
        try:
            raise ValueError("bad manifest")
        except ValueError:
            record = _record("failed", level=logging.ERROR, exc_info=sys.exc_info())
        parsed = json.loads(formatter.format(record))
        assert parsed["exception"]["type"] == "ValueError"
        assert "bad manifest" in parsed["exception"]["message"]

    def test_includes_extra_fields(self):
        record = _record()
        record.duration_ms = 42.5
        record.status_code = 202
        parsed = json.loads(StructuredFormatter().format(record))
        assert parsed["duration_ms"] == 42.5
        assert parsed["status_code"] == 202

    def test_includes_transition_fields(self):
        record = _record()
        record.from_state = "switching"
        record.to_state = "post_switch_probing"
        record.version = "2.0.0"
        parsed = json.loads(StructuredFormatter().format(record))
        assert parsed["from_state"] == "switching"
        assert parsed["to_state"] == "post_switch_probing"
        assert parsed["version"] == "2.0.0"


class TestConsoleFormatter:
    def test_formats_readable_output(self):
        output = ConsoleFormatter().format(_record("hello", name="bluegreen.deployment"))
        assert "bluegreen.deployment" in output
        assert "hello" in output

    def test_includes_context_info(self):
        with DeploymentContext(run_id="abc"):
            output = ConsoleFormatter().format(_record())
        assert "run_id=abc" in output

    def test_renders_transition(self):
        record = _record()
        record.from_state = "deploying"
        record.to_state = "pre_switch_probing"
        output = ConsoleFormatter().format(record)
        assert "state=deploying->pre_switch_probing" in output

    def test_has_color_codes(self):
        output = ConsoleFormatter().format(_record(level=logging.ERROR))
        assert "\033[31m" in output


@pytest.mark.usefixtures("restore_root_logger")
class TestConfigureLogging:
    def test_json_format(self):
        configure_logging(LoggingConfig(format=LogFormat.JSON))
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)

    def test_console_format(self):
        configure_logging(LoggingConfig(format=LogFormat.CONSOLE))
        assert isinstance(logging.getLogger().handlers[0].formatter, ConsoleFormatter)

    def test_sets_log_level(self):
        configure_logging(LoggingConfig(level=LogLevel.DEBUG))
        assert logging.getLogger().level == logging.DEBUG

    def test_quiets_noisy_loggers(self):
        configure_logging()
        assert logging.getLogger("httpx").level >= logging.WARNING

    def test_env_var_override_level(self, monkeypatch):
        monkeypatch.setenv("BLUEGREEN_LOG_LEVEL", "debug")
        configure_logging(LoggingConfig(level=LogLevel.ERROR))
        assert logging.getLogger().level == logging.DEBUG

    def test_env_var_override_format(self, monkeypatch):
        monkeypatch.setenv("BLUEGREEN_LOG_FORMAT", "CONSOLE")
        configure_logging(LoggingConfig(format=LogFormat.JSON))
        assert isinstance(logging.getLogger().handlers[0].formatter, ConsoleFormatter)

    def test_invalid_env_value_ignored(self, monkeypatch):
        monkeypatch.setenv("BLUEGREEN_LOG_LEVEL", "LOUD")
        configure_logging(LoggingConfig(level=LogLevel.WARNING))
        assert logging.getLogger().level == logging.WARNING

    def test_stream_selection(self):
        configure_logging(LoggingConfig(stream=LogStream.STDOUT))
        assert logging.getLogger().handlers[0].stream is sys.stdout
        applied = configure_logging(LoggingConfig(stream=LogStream.STDERR))
        assert logging.getLogger().handlers[0].stream is sys.stderr
        assert applied.stream == LogStream.STDERR


class TestPerformanceLogging:
    def test_log_performance_returns_result(self):
        @log_performance(threshold_ms=10000)
        def fast():
            return 42

        assert fast() == 42

    def test_log_performance_preserves_name(self):
        @log_performance()
        def apply_manifest():
            """Apply it."""

        assert apply_manifest.__name__ == "apply_manifest"
        assert apply_manifest.__doc__ == "Apply it."

    def test_slow_call_logs_warning(self, caplog):
        @log_performance(threshold_ms=0)
        def slow():
            return "done"

        with caplog.at_level(logging.DEBUG):
            slow()
        assert [r.levelno for r in caplog.records] == [logging.WARNING]
        assert "Slow step" in caplog.records[0].getMessage()

    def test_failure_logs_once_and_reraises(self, caplog):
        @log_performance(threshold_ms=0)
        def failing():
            raise ValueError("helm exploded")

        with caplog.at_level(logging.DEBUG):
            with pytest.raises(ValueError, match="helm exploded"):
                failing()
        assert [r.levelno for r in caplog.records] == [logging.ERROR]
        assert hasattr(caplog.records[0], "duration_ms")

    def test_performance_timer_records_duration(self):
        with PerformanceTimer("fast_op", threshold_ms=10000) as timer:
            pass
        assert 0 <= timer.duration_ms < 1000

    def test_performance_timer_with_exception(self, caplog):
        with caplog.at_level(logging.ERROR):
            with pytest.raises(ValueError):
                with PerformanceTimer("failing_op"):
                    raise ValueError("oops")
        assert "failing_op failed" in caplog.records[0].getMessage()

    def test_performance_timer_writes_timings_even_on_failure(self):
        timings = {}
        with PerformanceTimer("deploy", timings=timings):
            pass
        with pytest.raises(RuntimeError):
            with PerformanceTimer("pre_switch_probe", timings=timings):
                raise RuntimeError("probe crashed")
        assert set(timings) == {"deploy", "pre_switch_probe"}
        assert all(isinstance(v, float) for v in timings.values())

    def test_default_threshold(self):
        assert PerformanceTimer("op").threshold_ms == 1000.0


class TestMiddleware:
    """RequestTracingMiddleware driven directly as an ASGI app."""

    @staticmethod
    def _call(middleware, path="/api/v1/slots", headers=None):
        sent = []
        scope = {
            "type": "http",
            "method": "GET",
            "path": path,
            "headers": headers or [],
        }

        async def receive():
            return {"type": "http.request", "body": b""}

        async def send(message):
            sent.append(message)

        asyncio.run(middleware(scope, receive, send))
        return sent

    @staticmethod
    def _app(status=200, seen=None):
        async def app(scope, receive, send):
            if seen is not None:
                seen.append(get_request_id())
            await send({"type": "http.response.start", "status": status, "headers": []})
            await send({"type": "http.response.body", "body": b"{}"})

        return app

    def test_header_constants(self):
        assert REQUEST_ID_HEADER == "X-Request-ID"
        assert CORRELATION_ID_HEADER == "X-Correlation-ID"

    def test_echoes_incoming_request_id(self):
        seen = []
        sent = self._call(
            RequestTracingMiddleware(self._app(seen=seen)),
            headers=[(b"x-request-id", b"req-7")],
        )
        headers = dict(sent[0]["headers"])
        assert headers[b"x-request-id"] == b"req-7"
        assert headers[b"x-correlation-id"] == b"req-7"
        assert seen == ["req-7"]

    def test_generates_request_id(self):
        sent = self._call(RequestTracingMiddleware(self._app()))
        assert len(dict(sent[0]["headers"])[b"x-request-id"]) == 36

    def test_server_error_logged_as_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="bluegreen.logging_config.middleware"):
            self._call(RequestTracingMiddleware(self._app(status=502)))
        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.status_code == 502
        assert record.getMessage() == "GET /api/v1/slots -> 502"

    def test_excluded_path_not_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="bluegreen.logging_config.middleware"):
            self._call(RequestTracingMiddleware(self._app()), path="/health")
        assert caplog.records == []

    def test_non_http_scope_passes_through(self):
        calls = []

        async def app(scope, receive, send):
            calls.append(scope["type"])

        asyncio.run(RequestTracingMiddleware(app)({"type": "lifespan"}, None, None))
        assert calls == ["lifespan"]
