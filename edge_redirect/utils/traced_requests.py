import logging
from contextlib import contextmanager
from typing import Dict, Optional

from opentelemetry.trace import Tracer

from edge_redirect.models import EdgeRequest

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_request(
    tracer: Tracer,
    operation: str,
    request: Optional[EdgeRequest],
    start_message: str,
    extra_attrs: Optional[Dict] = None,
):
    """Context manager to create a span, set common request attributes, and log a start message."""
    with tracer.start_as_current_span(operation) as span:
        if request is not None:
            span.set_attribute("edge.uri", request.uri)
            span.set_attribute("edge.method", request.method)
            if request.client_ip:
                span.set_attribute("edge.client_ip", request.client_ip)
            host = request.header_value("host")
            if host:
                span.set_attribute("edge.host", host)
        if extra_attrs:
            for k, v in extra_attrs.items():
                span.set_attribute(k, v)
        logger.info(start_message)
        yield span
