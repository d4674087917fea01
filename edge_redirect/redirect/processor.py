"""
Redirect decision pipeline.

Each step inspects the request context and either returns a result, which
ends processing, or None to hand over to the next step:

1. ``rule_redirect_step``: first matching rule -> configured 3xx redirect
2. ``trailing_slash_step``: directory-looking path without ``/`` -> 302 to ``path/``
3. ``index_document_step``: forward to the origin, ``/dir/`` -> ``/dir/index.html``
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

from edge_redirect import vars as edge_vars
from edge_redirect.models import EdgeRequest, EdgeResponse, redirect_response
from edge_redirect.redirect.matcher import find_matching_rule, normalize_path
from edge_redirect.redirect.rules import RuleSet
from edge_redirect.redirect.uri_builder import append_query_string, build_redirect_uri

logger = logging.getLogger("uvicorn.error")

INDEX_DOCUMENT = "index.html"

ProcessResult = Union[EdgeResponse, EdgeRequest]


@dataclass(frozen=True)
class RequestContext:
    request: EdgeRequest
    path: str
    origin: str
    rules: RuleSet


ProcessingStep = Callable[[RequestContext], Optional[ProcessResult]]


def request_origin(request: EdgeRequest, scheme: Optional[str] = None) -> str:
    host = request.header_value("host")
    if not host:
        raise ValueError("request has no Host header")
    return f"{scheme or edge_vars.ORIGIN_SCHEME}://{host}"


def rule_redirect_step(ctx: RequestContext) -> Optional[ProcessResult]:
    rule = find_matching_rule(ctx.path, ctx.rules)
    if rule is None:
        return None

    location = build_redirect_uri(rule, ctx.path, ctx.origin)
    location = append_query_string(location, ctx.request.querystring)
    logger.info(
        f"[RedirectProcessor] {ctx.request.uri} matched {rule.condition.type}:"
        f"{rule.condition.value} -> {rule.redirect.status_code} {location}"
    )
    return redirect_response(rule.redirect.status_code, location)


def looks_like_directory(uri: str, path: str) -> bool:
    """True when ``uri`` has no trailing slash and its last segment has no extension."""
    last_segment = path.split("/")[-1]
    return not uri.endswith("/") and "." not in last_segment


def trailing_slash_step(ctx: RequestContext) -> Optional[ProcessResult]:
    uri = ctx.request.uri
    if not looks_like_directory(uri, ctx.path):
        return None

    location = f"{ctx.origin}/{ctx.path}/" if ctx.path else f"{ctx.origin}/"
    location = append_query_string(location, ctx.request.querystring)
    logger.debug(f"[RedirectProcessor] Adding trailing slash: {uri} -> {location}")
    return redirect_response(302, location)


def index_document_step(ctx: RequestContext) -> Optional[ProcessResult]:
    uri = ctx.request.uri
    if not uri.endswith("/"):
        return ctx.request
    return ctx.request.model_copy(update={"uri": uri + INDEX_DOCUMENT})


DEFAULT_PIPELINE: Sequence[ProcessingStep] = (
    rule_redirect_step,
    trailing_slash_step,
    index_document_step,
)


def process_request(
    request: EdgeRequest,
    rules: Optional[RuleSet],
    steps: Sequence[ProcessingStep] = DEFAULT_PIPELINE,
) -> ProcessResult:
    """
    Decide between a redirect response and forwarding ``request`` to the origin.

    Raises:
        ValueError: If the request carries no Host header
    """
    ctx = RequestContext(
        request=request,
        path=normalize_path(request.uri),
        origin=request_origin(request),
        rules=list(rules or []),
    )
    for step in steps:
        result = step(ctx)
        if result is not None:
            return result
    return request
