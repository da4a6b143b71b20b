from opentelemetry import trace

from product_service.core.tracing import extract_context_from_headers, inject_headers

TRACEPARENT = "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01"


def test_inject_keeps_existing_headers():
    headers = inject_headers({"event_kind": "product_created"})
    assert headers["event_kind"] == "product_created"


def test_extract_accepts_bytes_header_values():
    ctx = extract_context_from_headers({"traceparent": TRACEPARENT.encode(), "retries": 1})
    span_context = trace.get_current_span(ctx).get_span_context()
    assert format(span_context.trace_id, "032x") == "4bf92f3577b34da6a3ce929d0e0e4736"
    assert span_context.is_remote is True


def test_extract_without_headers_is_empty():
    ctx = extract_context_from_headers(None)
    assert trace.get_current_span(ctx).get_span_context().is_valid is False
