"""
Edge configuration.

The configuration document uses the same field names as the deployed
edge function config (``allowedIPs``, ``basicAuth``, ``redirect``) so an
existing JSON file can be pointed at with ``EDGE_CONFIG_FILE``. Individual
values can be overridden from the environment, see ``edge_redirect.vars``.
"""

import json
import logging
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from edge_redirect import vars as edge_vars

logger = logging.getLogger("uvicorn.error")

DEFAULT_FETCH_TIMEOUT = 5.0


class ConfigError(Exception):
    """Raised when the edge configuration cannot be loaded."""


class _ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class BasicAuthAccount(_ConfigModel):
    id: str
    password: str


class BasicAuthSettings(_ConfigModel):
    required_paths: List[str] = Field(default_factory=list, alias="requiredPaths")
    account: BasicAuthAccount


class RedirectSettings(_ConfigModel):
    is_enabled: bool = Field(False, alias="isEnabled")
    rules_url: Optional[str] = Field(None, alias="rulesUrl")
    json_key: Optional[str] = Field(None, alias="jsonKey")
    # milliseconds; None or 0 disables caching of remote rules
    cache_ttl: Optional[int] = Field(None, alias="cacheTtl", ge=0)
    # seconds
    fetch_timeout: float = Field(DEFAULT_FETCH_TIMEOUT, alias="fetchTimeout", gt=0)


class EdgeConfig(_ConfigModel):
    allowed_ips: List[str] = Field(default_factory=list, alias="allowedIPs")
    basic_auth: Optional[BasicAuthSettings] = Field(None, alias="basicAuth")
    redirect: RedirectSettings = Field(default_factory=RedirectSettings)


def _read_config_file(path: str) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Unable to read edge config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Edge config {path} must contain a JSON object")
    return data


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(data: dict) -> dict:
    data = dict(data)
    redirect = dict(data.get("redirect") or {})

    if edge_vars.ALLOWED_IPS:
        data["allowedIPs"] = list(edge_vars.ALLOWED_IPS)

    if edge_vars.BASIC_AUTH_ID:
        data["basicAuth"] = {
            "requiredPaths": list(edge_vars.BASIC_AUTH_REQUIRED_PATHS or ["/"]),
            "account": {
                "id": edge_vars.BASIC_AUTH_ID,
                "password": edge_vars.BASIC_AUTH_PASSWORD,
            },
        }

    if edge_vars.REDIRECT_ENABLED is not None:
        redirect["isEnabled"] = _parse_bool(edge_vars.REDIRECT_ENABLED)
    if edge_vars.REDIRECT_RULES_URL is not None:
        redirect["rulesUrl"] = edge_vars.REDIRECT_RULES_URL or None
    if edge_vars.REDIRECT_JSON_KEY is not None:
        redirect["jsonKey"] = edge_vars.REDIRECT_JSON_KEY or None
    if edge_vars.REDIRECT_CACHE_TTL is not None:
        redirect["cacheTtl"] = edge_vars.REDIRECT_CACHE_TTL or None
    if edge_vars.REDIRECT_FETCH_TIMEOUT is not None:
        redirect["fetchTimeout"] = edge_vars.REDIRECT_FETCH_TIMEOUT

    data["redirect"] = redirect
    return data


def load_edge_config(path: Optional[str] = None) -> EdgeConfig:
    """Load the edge configuration from ``path`` (or EDGE_CONFIG_FILE) and the environment."""
    path = path if path is not None else edge_vars.EDGE_CONFIG_FILE
    data = _read_config_file(path) if path else {}
    data = _apply_env_overrides(data)
    try:
        config = EdgeConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid edge config: {e}") from e

    logger.info(
        f"Edge config loaded: allowed_ips={len(config.allowed_ips)} "
        f"basic_auth={'on' if config.basic_auth else 'off'} "
        f"redirect_enabled={config.redirect.is_enabled} "
        f"rules_url={config.redirect.rules_url or '<bundled>'} "
        f"cache_ttl={config.redirect.cache_ttl}"
    )
    return config
