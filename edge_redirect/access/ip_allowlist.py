import logging
from typing import Optional, Sequence

from edge_redirect.models import EdgeRequest, EdgeResponse, html_response

logger = logging.getLogger("uvicorn.error")

# 403 is reserved for the SPA error-page fallback configured on the distribution.
FORBIDDEN_STATUS = 418


def forbidden_response() -> EdgeResponse:
    return html_response(
        FORBIDDEN_STATUS,
        "Forbidden",
        "<html><body><h1>403 Forbidden</h1><p>Access denied.</p></body></html>",
    )


def check_client_ip(
    request: EdgeRequest, allowed_ips: Sequence[str]
) -> Optional[EdgeResponse]:
    """Return a 418 response when an allowlist is configured and the client is not on it."""
    if not allowed_ips or request.client_ip in allowed_ips:
        return None
    logger.info(f"[AccessControl] Rejecting client {request.client_ip} for {request.uri}")
    return forbidden_response()
