import pytest

from edge_redirect import handler
from edge_redirect.models import EdgeRequest, edge_header
from edge_redirect.redirect.rules import parse_rules


def build_request(
    uri,
    querystring="",
    host="www.example.com",
    client_ip="203.0.113.10",
    headers=None,
    **extra,
) -> EdgeRequest:
    all_headers = {"host": edge_header("Host", host)} if host else {}
    all_headers.update(headers or {})
    return EdgeRequest(
        uri=uri,
        querystring=querystring,
        headers=all_headers,
        clientIp=client_ip,
        **extra,
    )


def build_event(request: EdgeRequest) -> dict:
    return {"Records": [{"cf": {"request": request.to_dict()}}]}


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def make_request():
    return build_request


@pytest.fixture
def make_event():
    return build_event


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sample_rules():
    return parse_rules(
        [
            {
                "condition": {"key": {"type": "exactMatch", "value": "old-page"}},
                "redirect": {"statusCode": 301, "uri": "/new-page/"},
            },
            {
                "condition": {"key": {"type": "prefixMatch", "value": "legacy/"}},
                "redirect": {
                    "statusCode": 302,
                    "uri": {"path": "/modern/", "querystring": "from=legacy"},
                },
            },
            {
                "condition": {"key": {"type": "regexp", "value": "^blog/(.*)$"}},
                "redirect": {"statusCode": 301, "uri": "/articles/$1"},
            },
        ]
    )


@pytest.fixture(autouse=True)
def reset_handler_state():
    handler.reset_state()
    yield
    handler.reset_state()
