import asyncio
import json

import httpx
import pytest

from edge_redirect.config import RedirectSettings
from edge_redirect.redirect.rule_source import (
    RuleCache,
    RuleFetchError,
    RuleSource,
    fetch_redirect_rules,
)
from edge_redirect.redirect.rules import parse_rules

RULES_URL = "https://config.example.com/redirects.json"

REMOTE_DOCUMENT = [
    {
        "condition": {"key": {"type": "exactMatch", "value": "remote"}},
        "redirect": {"statusCode": 301, "uri": "/from-remote/"},
    }
]

DEFAULT_RULES = parse_rules(
    [
        {
            "condition": {"key": {"type": "exactMatch", "value": "default"}},
            "redirect": {"statusCode": 301, "uri": "/from-default/"},
        }
    ]
)


def _settings(**overrides) -> RedirectSettings:
    values = {"isEnabled": True, "rulesUrl": RULES_URL}
    values.update(overrides)
    return RedirectSettings.model_validate(values)


class ScriptedFetcher:
    """Fetcher returning queued results; exceptions in the queue are raised."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def __call__(self, rules_url, json_key, timeout):
        self.calls.append((rules_url, json_key, timeout))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _rules(value):
    return parse_rules(
        [
            {
                "condition": {"key": {"type": "exactMatch", "value": value}},
                "redirect": {"statusCode": 302, "uri": f"/{value}/"},
            }
        ]
    )


def _transport(handler):
    return httpx.MockTransport(handler)


# fetch_redirect_rules


@pytest.mark.asyncio
async def test_fetch_parses_top_level_array():
    def handler(request):
        assert str(request.url) == RULES_URL
        return httpx.Response(200, json=REMOTE_DOCUMENT)

    rules = await fetch_redirect_rules(RULES_URL, transport=_transport(handler))
    assert len(rules) == 1
    assert rules[0].condition.value == "remote"


@pytest.mark.asyncio
async def test_fetch_descends_into_json_key():
    def handler(request):
        return httpx.Response(200, json={"version": 3, "redirects": REMOTE_DOCUMENT})

    rules = await fetch_redirect_rules(
        RULES_URL, json_key="redirects", transport=_transport(handler)
    )
    assert rules[0].redirect.uri == "/from-remote/"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response,json_key",
    [
        (httpx.Response(200, content=b"{not json"), None),
        (httpx.Response(200, json={"redirects": REMOTE_DOCUMENT}), None),
        (httpx.Response(200, json={"other": REMOTE_DOCUMENT}), "redirects"),
        (httpx.Response(200, json=REMOTE_DOCUMENT), "redirects"),
        (httpx.Response(200, json={"redirects": {"not": "an array"}}), "redirects"),
        (httpx.Response(404, json=REMOTE_DOCUMENT), None),
        (httpx.Response(200, json=[{"condition": {"type": "exactMatch"}}]), None),
    ],
)
async def test_fetch_rejects_unusable_documents(response, json_key):
    transport = _transport(lambda request: response)
    with pytest.raises(RuleFetchError):
        await fetch_redirect_rules(RULES_URL, json_key=json_key, transport=transport)


@pytest.mark.asyncio
async def test_fetch_wraps_transport_errors():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RuleFetchError):
        await fetch_redirect_rules(RULES_URL, transport=_transport(handler))


# RuleSource


@pytest.mark.asyncio
async def test_disabled_redirects_yield_no_rules(clock):
    fetcher = ScriptedFetcher()
    source = RuleSource(_settings(isEnabled=False), DEFAULT_RULES, fetcher, clock)
    assert await source.get_rules() == []
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_no_rules_url_uses_defaults(clock):
    fetcher = ScriptedFetcher()
    source = RuleSource(_settings(rulesUrl=None), DEFAULT_RULES, fetcher, clock)
    assert await source.get_rules() == DEFAULT_RULES
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_fetcher_receives_url_key_and_timeout(clock):
    fetcher = ScriptedFetcher(_rules("a"))
    source = RuleSource(
        _settings(jsonKey="redirects", fetchTimeout=2.5), DEFAULT_RULES, fetcher, clock
    )
    await source.get_rules()
    assert fetcher.calls == [(RULES_URL, "redirects", 2.5)]


@pytest.mark.asyncio
async def test_without_ttl_every_request_fetches(clock):
    first, second = _rules("first"), _rules("second")
    fetcher = ScriptedFetcher(first, second)
    source = RuleSource(_settings(), DEFAULT_RULES, fetcher, clock)

    assert await source.get_rules() == first
    assert await source.get_rules() == second
    assert source.cache is None
    assert len(fetcher.calls) == 2


@pytest.mark.asyncio
async def test_cache_reused_until_ttl_expires(clock):
    ttl = 60_000
    first, second = _rules("first"), _rules("second")
    fetcher = ScriptedFetcher(first, second)
    source = RuleSource(_settings(cacheTtl=ttl), DEFAULT_RULES, fetcher, clock)
    fetched_at = clock.now

    assert await source.get_rules() == first
    assert source.cache == RuleCache(rules=first, fetched_at=fetched_at)

    clock.advance(ttl - 1)
    assert await source.get_rules() == first
    assert len(fetcher.calls) == 1

    clock.advance(2)
    assert await source.get_rules() == second
    assert len(fetcher.calls) == 2
    assert source.cache.fetched_at == fetched_at + ttl + 1


@pytest.mark.asyncio
async def test_fetch_failure_keeps_stale_cache(clock):
    ttl = 1_000
    cached = _rules("cached")
    fetcher = ScriptedFetcher(cached, RuleFetchError("boom"), RuleFetchError("boom"))
    source = RuleSource(_settings(cacheTtl=ttl), DEFAULT_RULES, fetcher, clock)

    await source.get_rules()
    cache_before = source.cache

    clock.advance(ttl + 1)
    assert await source.get_rules() == cached
    assert source.cache is cache_before

    # the failed refresh did not renew the timestamp, so the next request retries
    assert await source.get_rules() == cached
    assert len(fetcher.calls) == 3


@pytest.mark.asyncio
async def test_fetch_failure_without_cache_uses_defaults(clock):
    fetcher = ScriptedFetcher(RuleFetchError("unreachable"))
    source = RuleSource(_settings(cacheTtl=1_000), DEFAULT_RULES, fetcher, clock)
    assert await source.get_rules() == DEFAULT_RULES
    assert source.cache is None


@pytest.mark.asyncio
async def test_successful_refresh_replaces_cache_wholesale(clock):
    first, second = _rules("first"), _rules("second")
    fetcher = ScriptedFetcher(first, second)
    source = RuleSource(_settings(cacheTtl=10), DEFAULT_RULES, fetcher, clock)

    await source.get_rules()
    clock.advance(10)
    await source.get_rules()
    assert source.cache.rules == second


@pytest.mark.asyncio
async def test_hung_fetch_times_out_and_falls_back(clock):
    async def hanging_fetcher(rules_url, json_key, timeout):
        await asyncio.sleep(10)
        return _rules("never")

    source = RuleSource(
        _settings(fetchTimeout=0.01), DEFAULT_RULES, hanging_fetcher, clock
    )
    assert await source.get_rules() == DEFAULT_RULES


@pytest.mark.asyncio
async def test_rule_source_with_http_fetch(clock):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, content=json.dumps(REMOTE_DOCUMENT).encode("utf-8"))

    async def fetcher(rules_url, json_key, timeout):
        return await fetch_redirect_rules(
            rules_url, json_key, timeout, transport=_transport(handler)
        )

    source = RuleSource(_settings(cacheTtl=5_000), DEFAULT_RULES, fetcher, clock)
    rules = await source.get_rules()
    await source.get_rules()
    assert rules[0].condition.value == "remote"
    assert len(calls) == 1
