import base64
import hmac
import logging
from typing import Optional

from edge_redirect.config import BasicAuthAccount, BasicAuthSettings
from edge_redirect.models import EdgeRequest, EdgeResponse, edge_header, html_response

logger = logging.getLogger("uvicorn.error")


def expected_authorization(account: BasicAuthAccount) -> str:
    credentials = f"{account.id}:{account.password}".encode("utf-8")
    return "Basic " + base64.b64encode(credentials).decode("ascii")


def unauthorized_response() -> EdgeResponse:
    return html_response(
        401,
        "Unauthorized",
        "<html><body><h1>401 Unauthorized</h1><p>Authentication required.</p></body></html>",
        extra_headers={"www-authenticate": edge_header("WWW-Authenticate", "Basic")},
    )


def requires_auth(uri: str, settings: BasicAuthSettings) -> bool:
    return any(uri.startswith(prefix) for prefix in settings.required_paths)


def check_basic_auth(
    request: EdgeRequest, settings: Optional[BasicAuthSettings]
) -> Optional[EdgeResponse]:
    """Return a 401 challenge when the URI is protected and the credentials do not match."""
    if settings is None or not requires_auth(request.uri, settings):
        return None

    supplied = request.header_value("authorization") or ""
    expected = expected_authorization(settings.account)
    if hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        return None

    logger.info(f"[AccessControl] Missing or invalid credentials for {request.uri}")
    return unauthorized_response()
