from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EdgeHeader(BaseModel):
    key: Optional[str] = None
    value: str


EdgeHeaders = Dict[str, List[EdgeHeader]]


def edge_header(key: str, value: str) -> List[EdgeHeader]:
    return [EdgeHeader(key=key, value=value)]


class EdgeRequest(BaseModel):
    """
    Viewer request as delivered by the edge runtime.

    Header names are lower-cased keys, each holding a list of
    ``{key, value}`` entries. Fields the processor does not know about are
    kept so a forwarded request reaches the origin unchanged.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uri: str
    querystring: str = ""
    headers: EdgeHeaders = Field(default_factory=dict)
    client_ip: str = Field("", alias="clientIp")
    method: str = "GET"

    def header_value(self, name: str) -> Optional[str]:
        entries = self.headers.get(name.lower()) or []
        return entries[0].value if entries else None

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class EdgeResponse(BaseModel):
    """Response generated at the edge; the origin is never contacted."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    status_description: Optional[str] = Field(None, alias="statusDescription")
    headers: EdgeHeaders = Field(default_factory=dict)
    body: Optional[str] = None

    @property
    def status_code(self) -> int:
        return int(self.status)

    @property
    def location(self) -> Optional[str]:
        entries = self.headers.get("location") or []
        return entries[0].value if entries else None

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


HTML_HEADERS: EdgeHeaders = {"content-type": edge_header("Content-Type", "text/html")}


def html_response(
    status: int,
    description: str,
    body: str,
    extra_headers: Optional[EdgeHeaders] = None,
) -> EdgeResponse:
    headers: EdgeHeaders = dict(extra_headers or {})
    headers.update(HTML_HEADERS)
    return EdgeResponse(
        status=str(status),
        statusDescription=description,
        headers=headers,
        body=body,
    )


def redirect_response(status_code: int, location: str) -> EdgeResponse:
    return EdgeResponse(
        status=str(status_code),
        headers={"location": edge_header("Location", location)},
    )


def internal_error_response() -> EdgeResponse:
    return html_response(
        500,
        "Internal Server Error",
        "<html><body><h1>500 Internal Server Error</h1>"
        "<p>There was an error processing your request.</p></body></html>",
    )
