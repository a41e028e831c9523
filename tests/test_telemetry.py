from __future__ import annotations

import logging

from opentelemetry import trace

from scholarbridge.core.config import Settings
from scholarbridge.core.telemetry import _parse_headers, configure_logging, setup_telemetry, shutdown_telemetry


def test_parse_headers_skips_malformed_pairs() -> None:
    assert _parse_headers("authorization=Bearer abc, x-team = data ,broken,=empty") == {
        "authorization": "Bearer abc",
        "x-team": "data",
    }
    assert _parse_headers(None) == {}


def test_disabled_telemetry_is_a_no_op() -> None:
    runtime = setup_telemetry(Settings(otel_enabled=False), component="scheduler")
    assert runtime.enabled is False
    assert runtime.component == "scheduler"
    shutdown_telemetry(runtime)


def test_log_records_carry_trace_ids() -> None:
    configure_logging("INFO")
    record = logging.getLogger("scholarbridge.test").makeRecord(
        "scholarbridge.test", logging.INFO, __file__, 1, "hello", None, None
    )
    assert record.trace_id == "0" * 32

    tracer = trace.get_tracer(__name__)
    with tracer.start_as_current_span("fetch_cycle.run"):
        inner = logging.getLogger("scholarbridge.test").makeRecord(
            "scholarbridge.test", logging.INFO, __file__, 1, "inside", None, None
        )
    assert hasattr(inner, "span_id")
