"""
HTTP front for running the edge handler outside the CDN.

Every GET/HEAD request is converted to an ``EdgeRequest`` and run through
the same pipeline as the viewer-request function. Redirects and error pages
are returned directly; pass-through requests are forwarded to
``ORIGIN_SERVER_URL`` with the (possibly rewritten) URI.
"""

import logging
from typing import AsyncIterator, Dict

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response, StreamingResponse
from opentelemetry import trace
from starlette.background import BackgroundTask

from edge_redirect import vars as edge_vars
from edge_redirect.handler import handle_edge_request
from edge_redirect.models import EdgeHeader, EdgeHeaders, EdgeRequest, EdgeResponse

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# httpx hands back decoded bodies, so the origin's framing headers no longer apply
DROPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {"content-encoding", "content-length"}


def request_path(request: Request) -> str:
    """The path exactly as sent, still percent-encoded."""
    raw_path = request.scope.get("raw_path")
    if not raw_path:
        return request.url.path
    return raw_path.decode("latin-1").split("?", 1)[0]


def to_edge_request(request: Request) -> EdgeRequest:
    headers: EdgeHeaders = {}
    for name, value in request.headers.items():
        headers.setdefault(name.lower(), []).append(EdgeHeader(key=name, value=value))
    return EdgeRequest(
        uri=request_path(request),
        querystring=request.url.query,
        headers=headers,
        clientIp=request.client.host if request.client else "",
        method=request.method,
    )


def to_response(edge_response: EdgeResponse) -> Response:
    headers = {
        entries[0].key or name: entries[0].value
        for name, entries in edge_response.headers.items()
        if entries
    }
    return Response(
        content=edge_response.body or "",
        status_code=edge_response.status_code,
        headers=headers,
    )


def get_origin_url(edge_request: EdgeRequest) -> str:
    url = edge_vars.ORIGIN_SERVER_URL + edge_request.uri
    if edge_request.querystring:
        url = f"{url}?{edge_request.querystring}"
    return url


def prepare_headers(edge_request: EdgeRequest) -> Dict[str, str]:
    """Headers for the origin request: hop-by-hop and Host removed, X-Forwarded-* added."""
    headers = {}
    for name, entries in edge_request.headers.items():
        if name in HOP_BY_HOP_HEADERS or name == "host" or not entries:
            continue
        headers[entries[0].key or name] = entries[0].value

    host = edge_request.header_value("host")
    if host:
        headers["x-forwarded-host"] = host
    if edge_request.client_ip:
        existing_xff = edge_request.header_value("x-forwarded-for") or ""
        headers["x-forwarded-for"] = f"{existing_xff}, {edge_request.client_ip}".strip(", ")
    return headers


def origin_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(edge_vars.PROXY_TIMEOUT),
        follow_redirects=False,
    )


async def stream_origin_body(response: httpx.Response) -> AsyncIterator[bytes]:
    async for chunk in response.aiter_bytes():
        yield chunk


async def forward_to_origin(edge_request: EdgeRequest) -> Response:
    if not edge_vars.ORIGIN_SERVER_URL:
        raise HTTPException(
            status_code=503,
            detail="ORIGIN_SERVER_URL is not configured. Proxy is unavailable.",
        )

    with tracer.start_as_current_span("forward_to_origin") as span:
        origin_url = get_origin_url(edge_request)
        span.set_attribute("proxy.target_url", origin_url)
        logger.debug(f"Forwarding {edge_request.method} {edge_request.uri} -> {origin_url}")

        client = origin_client()
        try:
            origin_request = client.build_request(
                method=edge_request.method,
                url=origin_url,
                headers=prepare_headers(edge_request),
            )
            response = await client.send(origin_request, stream=True)
        except httpx.TimeoutException as e:
            await client.aclose()
            logger.error(f"Origin timeout for {origin_url}: {e}")
            raise HTTPException(status_code=504, detail="Origin timeout") from e
        except httpx.RequestError as e:
            await client.aclose()
            logger.error(f"Origin unreachable for {origin_url}: {e}")
            raise HTTPException(status_code=502, detail="Origin unreachable") from e
        except Exception:
            await client.aclose()
            raise

        span.set_attribute("proxy.status_code", response.status_code)
        headers = {
            name: value
            for name, value in response.headers.items()
            if name.lower() not in DROPPED_RESPONSE_HEADERS
        }

        async def close_origin():
            await response.aclose()
            await client.aclose()

        return StreamingResponse(
            stream_origin_body(response),
            status_code=response.status_code,
            headers=headers,
            background=BackgroundTask(close_origin),
        )


@router.api_route("/{full_path:path}", methods=["GET", "HEAD"])
async def edge_entry(request: Request, full_path: str):
    result = await handle_edge_request(to_edge_request(request))
    if isinstance(result, EdgeResponse):
        return to_response(result)
    return await forward_to_origin(result)
