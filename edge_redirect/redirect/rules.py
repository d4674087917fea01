"""
Redirect rule model.

A rule document is a JSON array of objects shaped like::

    {
      "condition": {"key": {"type": "prefixMatch", "value": "old-blog/"}},
      "redirect": {"statusCode": 301, "uri": {"path": "/blog/"}}
    }

``condition`` may also carry ``type``/``value`` directly without the ``key``
wrapper. ``redirect.uri`` is either a plain string or an object with
``path`` and optional ``origin`` / ``querystring``.
"""

import json
import logging
import re
from enum import Enum
from functools import lru_cache
from importlib import resources
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

logger = logging.getLogger("uvicorn.error")


class ConditionType(str, Enum):
    EXACT_MATCH = "exactMatch"
    PREFIX_MATCH = "prefixMatch"
    REGEXP = "regexp"


class RuleCondition(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Kept as a plain string: unknown kinds are valid input that never matches.
    type: str = ""
    value: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _unwrap_key(cls, data):
        if isinstance(data, dict) and isinstance(data.get("key"), dict):
            return data["key"]
        return data

    @model_validator(mode="after")
    def _check_pattern(self):
        if self.kind is ConditionType.REGEXP and self.value is not None:
            try:
                compile_pattern(self.value)
            except re.error as e:
                raise ValueError(f"invalid regexp {self.value!r}: {e}") from e
        return self

    @property
    def kind(self) -> Optional[ConditionType]:
        try:
            return ConditionType(self.type)
        except ValueError:
            return None


class RedirectTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    origin: Optional[str] = None
    querystring: Optional[str] = None


class RedirectAction(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status_code: int = Field(alias="statusCode")
    uri: Union[str, RedirectTarget]

    @field_validator("status_code")
    @classmethod
    def _must_be_redirect(cls, value: int) -> int:
        if not 300 <= value <= 399:
            raise ValueError(f"redirect status code must be 3xx, got {value}")
        return value


class RedirectRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    condition: RuleCondition
    redirect: RedirectAction


_JS_NAMED_GROUP = re.compile(r"(?<!\\)\(\?<(?![=!])")


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> re.Pattern:
    """Compile a rule pattern, accepting JS-style ``(?<name>...)`` groups."""
    return re.compile(_JS_NAMED_GROUP.sub("(?P<", pattern))


RuleSet = List[RedirectRule]

_rule_set_adapter = TypeAdapter(List[RedirectRule])


def parse_rules(data) -> RuleSet:
    """Validate a decoded JSON array into rules. Raises pydantic.ValidationError."""
    return _rule_set_adapter.validate_python(data)


def load_rules_file(path: Optional[str] = None) -> RuleSet:
    """Load a rule document from ``path``, or the rules bundled with the package."""
    if path:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        source = path
    else:
        data = json.loads(
            resources.files("edge_redirect.redirect")
            .joinpath("default_rules.json")
            .read_text(encoding="utf-8")
        )
        source = "bundled default_rules.json"

    rules = parse_rules(data)
    logger.info(f"Loaded {len(rules)} redirect rules from {source}")
    return rules
