"""
Edge handler: access control, then the redirect pipeline.

``handle_event`` is the viewer-request entry point. It receives the edge
event envelope (``Records[0].cf.request``) and returns either a response
dict or the request dict to forward to the origin.
"""

import json
import logging
from typing import Optional

from opentelemetry import trace

from edge_redirect import vars as edge_vars
from edge_redirect.access.basic_auth import check_basic_auth
from edge_redirect.access.ip_allowlist import check_client_ip
from edge_redirect.config import EdgeConfig, load_edge_config
from edge_redirect.models import EdgeRequest, internal_error_response
from edge_redirect.redirect.processor import ProcessResult, process_request
from edge_redirect.redirect.rule_source import RuleSource
from edge_redirect.redirect.rules import load_rules_file
from edge_redirect.utils import masked_event
from edge_redirect.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from edge_redirect.utils.traced_requests import traced_request

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

# Process-wide state, shared by every invocation served by this process.
_config: Optional[EdgeConfig] = None
_rule_source: Optional[RuleSource] = None


def get_config() -> EdgeConfig:
    global _config
    if _config is None:
        _config = load_edge_config()
    return _config


def get_rule_source(config: Optional[EdgeConfig] = None) -> RuleSource:
    global _rule_source
    if _rule_source is None:
        config = config or get_config()
        default_rules = load_rules_file(edge_vars.DEFAULT_RULES_FILE or None)
        _rule_source = RuleSource(config.redirect, default_rules)
    return _rule_source


def reset_state() -> None:
    """Forget the loaded config and the rule cache."""
    global _config, _rule_source
    _config = None
    _rule_source = None


async def handle_request(
    request: EdgeRequest,
    config: Optional[EdgeConfig] = None,
    rule_source: Optional[RuleSource] = None,
) -> ProcessResult:
    """Run access control and the redirect pipeline for one request."""
    config = config or get_config()

    denied = check_client_ip(request, config.allowed_ips) or check_basic_auth(
        request, config.basic_auth
    )
    if denied is not None:
        return denied

    source = rule_source or get_rule_source(config)
    rules = await source.get_rules()
    return process_request(request, rules)


async def handle_edge_request(
    request: EdgeRequest,
    config: Optional[EdgeConfig] = None,
    rule_source: Optional[RuleSource] = None,
) -> ProcessResult:
    """
    Like ``handle_request``, but any failure is logged and answered with a
    fixed 500 page; error details never reach the response body.
    """
    try:
        with traced_request(
            tracer,
            "edge_viewer_request",
            request,
            f"[EdgeHandler] {request.method} {request.uri}",
            extra_attrs={"edge.querystring": request.querystring} if request.querystring else None,
        ) as span:
            try:
                result = await handle_request(request, config, rule_source)
            except Exception as e:
                span.set_attribute("edge.error", format_exception_message(e))
                raise
            if isinstance(result, EdgeRequest):
                span.set_attribute("edge.forward_uri", result.uri)
            else:
                span.set_attribute("edge.status", result.status)
            return result
    except Exception as e:
        log_exception_with_details(logger, "[EdgeHandler]", e)
        return internal_error_response()


async def handle_event(
    event: dict,
    config: Optional[EdgeConfig] = None,
    rule_source: Optional[RuleSource] = None,
) -> dict:
    """Handle a viewer-request event and return the edge wire shape."""
    try:
        logger.info(f"[EdgeHandler] event: {json.dumps(masked_event(event))}")
        request = EdgeRequest.model_validate(event["Records"][0]["cf"]["request"])
    except Exception as e:
        log_exception_with_details(logger, "[EdgeHandler]", e)
        return internal_error_response().to_dict()

    result = await handle_edge_request(request, config, rule_source)
    return result.to_dict()
