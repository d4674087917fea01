"""
Destination URL construction for matched redirect rules.

Regexp rules rewrite the normalized path with the rule's replacement
template. Templates are authored with ``$`` references (``$1``, ``$<name>``,
``$&``, ``$```, ``$'``, ``$$``) rather than Python's ``\\1`` syntax, so the
expansion is done here instead of by ``re.sub`` itself.
"""

import re
from re import Match

from edge_redirect.redirect.rules import (
    ConditionType,
    RedirectRule,
    RedirectTarget,
    compile_pattern,
)

_TEMPLATE_TOKEN = re.compile(r"\$(?:(\$)|(&)|(`)|(')|<([^>]*)>|(\d\d?))")


def _group_text(match: Match, group) -> str:
    return match.group(group) or ""


def _numbered_reference(match: Match, digits: str) -> str:
    group_count = match.re.groups
    if len(digits) == 2 and 1 <= int(digits) <= group_count:
        return _group_text(match, int(digits))
    first = int(digits[0])
    if 1 <= first <= group_count:
        return _group_text(match, first) + digits[1:]
    return "$" + digits


def expand_replacement(template: str, match: Match) -> str:
    """Expand a ``$``-style replacement template against a regex match."""
    subject = match.string

    def _expand(token: Match) -> str:
        dollar, whole, before, after, name, digits = token.groups()
        if dollar:
            return "$"
        if whole:
            return match.group(0)
        if before:
            return subject[: match.start()]
        if after:
            return subject[match.end():]
        if name is not None:
            if not match.re.groupindex:
                return token.group(0)
            if name not in match.re.groupindex:
                return ""
            return _group_text(match, name)
        return _numbered_reference(match, digits)

    return _TEMPLATE_TOKEN.sub(_expand, template)


def regexp_replace(pattern: str, path: str, template: str) -> str:
    """Replace the first match of ``pattern`` in ``path`` using ``template``."""
    return compile_pattern(pattern).sub(
        lambda m: expand_replacement(template, m), path, count=1
    )


def append_query_string(url: str, querystring: str) -> str:
    """Append ``querystring`` with ``?`` or ``&``. An empty query string is a no-op."""
    if not querystring:
        return url
    return url + ("&" if "?" in url else "?") + querystring


def build_redirect_uri(rule: RedirectRule, path: str, origin: str) -> str:
    """
    Build the redirect destination for a matched rule.

    Args:
        rule: The rule selected by the matcher
        path: The normalized request path the rule was matched against
        origin: ``scheme://host`` of the incoming request

    Returns:
        The destination URL, without the request's own query string
    """
    target = rule.redirect.uri
    condition = rule.condition

    if condition.kind is ConditionType.REGEXP:
        template = target.path if isinstance(target, RedirectTarget) else target
        destination = regexp_replace(condition.value, path, template)
    elif isinstance(target, RedirectTarget):
        destination = (target.origin or origin) + target.path
    else:
        destination = target

    if isinstance(target, RedirectTarget) and target.querystring:
        destination = append_query_string(destination, target.querystring)

    return destination
