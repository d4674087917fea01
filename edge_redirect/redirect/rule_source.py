"""
Active redirect rule set: disabled, bundled defaults, or a remote document.

Remote documents are fetched with httpx and, when ``cacheTtl`` is set, kept
in a ``RuleCache`` owned by the ``RuleSource``. A failed refresh never
touches the cache (stale-if-error); the previously cached rules keep
serving, and the bundled defaults are used only when nothing was cached.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx
from opentelemetry import trace
from pydantic import ValidationError

from edge_redirect.config import RedirectSettings
from edge_redirect.redirect.rules import RuleSet, parse_rules

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)


class RuleFetchError(Exception):
    """The remote rule document could not be used."""


@dataclass(frozen=True)
class RuleCache:
    rules: RuleSet
    fetched_at: float  # milliseconds on the source clock


RuleFetcher = Callable[[str, Optional[str], float], Awaitable[RuleSet]]
Clock = Callable[[], float]


def monotonic_ms() -> float:
    return time.monotonic() * 1000


async def fetch_redirect_rules(
    rules_url: str,
    json_key: Optional[str] = None,
    timeout: float = 5.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RuleSet:
    """
    GET ``rules_url`` and validate it as a rule document.

    Args:
        rules_url: URL of the JSON document
        json_key: Optional top-level key holding the rule array
        timeout: httpx timeout in seconds
        transport: Optional httpx transport, used by tests

    Returns:
        The validated rules

    Raises:
        RuleFetchError: On transport errors, non-2xx responses, invalid JSON,
            a missing key, a non-array document, or any invalid rule
    """
    with tracer.start_as_current_span("fetch_redirect_rules") as span:
        span.set_attribute("rules.url", rules_url)
        if json_key:
            span.set_attribute("rules.json_key", json_key)

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(timeout), transport=transport
            ) as client:
                response = await client.get(rules_url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise RuleFetchError(f"request to {rules_url} failed: {e}") from e

        span.set_attribute("rules.status_code", response.status_code)

        try:
            document = response.json()
        except ValueError as e:
            raise RuleFetchError(f"{rules_url} did not return valid JSON: {e}") from e

        if json_key:
            if not isinstance(document, dict) or json_key not in document:
                raise RuleFetchError(f"{rules_url} has no key {json_key!r}")
            document = document[json_key]

        if not isinstance(document, list):
            raise RuleFetchError(
                f"{rules_url} rule document is {type(document).__name__}, expected an array"
            )

        try:
            rules = parse_rules(document)
        except ValidationError as e:
            raise RuleFetchError(f"{rules_url} contains invalid rules: {e}") from e

        span.set_attribute("rules.count", len(rules))
        return rules


class RuleSource:
    """Supplies the rule set for each request according to the redirect settings."""

    def __init__(
        self,
        settings: RedirectSettings,
        default_rules: RuleSet,
        fetcher: RuleFetcher = fetch_redirect_rules,
        clock: Clock = monotonic_ms,
    ):
        self.settings = settings
        self.default_rules = list(default_rules)
        self.cache: Optional[RuleCache] = None
        self._fetcher = fetcher
        self._clock = clock

    def _cache_is_fresh(self, now: float) -> bool:
        ttl = self.settings.cache_ttl
        return bool(ttl) and self.cache is not None and now - self.cache.fetched_at < ttl

    async def _fetch(self) -> RuleSet:
        settings = self.settings
        try:
            return await asyncio.wait_for(
                self._fetcher(settings.rules_url, settings.json_key, settings.fetch_timeout),
                timeout=settings.fetch_timeout,
            )
        except asyncio.TimeoutError as e:
            raise RuleFetchError(
                f"fetching {settings.rules_url} exceeded {settings.fetch_timeout}s"
            ) from e

    async def get_rules(self) -> RuleSet:
        settings = self.settings
        if not settings.is_enabled:
            return []
        if not settings.rules_url:
            return self.default_rules

        now = self._clock()
        if self._cache_is_fresh(now):
            logger.debug(f"[RuleSource] Using cached rules from {settings.rules_url}")
            return self.cache.rules

        try:
            rules = await self._fetch()
        except RuleFetchError as e:
            if self.cache is not None:
                logger.warning(f"[RuleSource] Redirect fetch error, keeping cached rules: {e}")
                return self.cache.rules
            logger.error(f"[RuleSource] Redirect fetch error, using default rules: {e}")
            return self.default_rules

        if settings.cache_ttl:
            self.cache = RuleCache(rules=rules, fetched_at=now)
        logger.debug(f"[RuleSource] Fetched {len(rules)} rules from {settings.rules_url}")
        return rules
