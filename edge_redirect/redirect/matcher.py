import logging
import re
from typing import Callable, Dict, Optional, Sequence

from edge_redirect.redirect.rules import (
    ConditionType,
    RedirectRule,
    RuleCondition,
    compile_pattern,
)

logger = logging.getLogger("uvicorn.error")


def normalize_path(uri: str) -> str:
    """Strip leading slashes and a single trailing slash: ``/docs/guide/`` -> ``docs/guide``."""
    return re.sub(r"^/+|/\Z", "", uri)


def _exact_match(value: str, path: str) -> bool:
    return path == value


def _prefix_match(value: str, path: str) -> bool:
    return path.startswith(value)


def _regexp_match(value: str, path: str) -> bool:
    # Pattern.search keeps no state between calls, unlike a global-flag JS RegExp.
    try:
        return compile_pattern(value).search(path) is not None
    except re.error as e:
        logger.warning(f"[RuleMatcher] Skipping rule with invalid regexp {value!r}: {e}")
        return False


CONDITION_MATCHERS: Dict[ConditionType, Callable[[str, str], bool]] = {
    ConditionType.EXACT_MATCH: _exact_match,
    ConditionType.PREFIX_MATCH: _prefix_match,
    ConditionType.REGEXP: _regexp_match,
}


def condition_matches(condition: RuleCondition, path: str) -> bool:
    """Unknown condition kinds and conditions without a value never match."""
    matcher = CONDITION_MATCHERS.get(condition.kind) if condition.kind else None
    if matcher is None or condition.value is None:
        return False
    return matcher(condition.value, path)


def find_matching_rule(
    path: str, rules: Optional[Sequence[RedirectRule]]
) -> Optional[RedirectRule]:
    """Return the first rule, in list order, whose condition matches the normalized path."""
    for rule in rules or ():
        if condition_matches(rule.condition, path):
            return rule
    return None
