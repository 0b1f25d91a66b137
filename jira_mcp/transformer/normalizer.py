# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Field value normalization.

Jira field values are schema-less JSON: users, options, projects, rich
text and custom field payloads all come back verbose. ``normalize`` walks a
value and compacts each object with the first matching rule. The rules are
an ordered table, so new shapes are added as data.
"""

from collections.abc import Callable
from typing import Any, NamedTuple

from .adf import to_plain_text

COMMENT_HINTS = frozenset({"comment", "comments"})


class FieldRule(NamedTuple):
    """A (predicate, transform) pair applied to dict values."""

    name: str
    matches: Callable[[dict[str, Any], str | None], bool]
    transform: Callable[[dict[str, Any], str | None], Any]


def _is_actor(value: dict[str, Any], hint: str | None) -> bool:
    return "emailAddress" in value or "displayName" in value


def _actor(value: dict[str, Any], hint: str | None) -> dict[str, str]:
    return {
        "displayName": value.get("displayName") or "",
        "emailAddress": value.get("emailAddress") or "",
    }


def _is_document(value: dict[str, Any], hint: str | None) -> bool:
    return value.get("type") == "doc"


def _document(value: dict[str, Any], hint: str | None) -> str:
    return to_plain_text(value)


def _is_comment_collection(value: dict[str, Any], hint: str | None) -> bool:
    return hint in COMMENT_HINTS and isinstance(value.get("comments"), list)


def _comment_collection(value: dict[str, Any], hint: str | None) -> dict[str, Any]:
    comments = []
    for comment in value["comments"]:
        if not isinstance(comment, dict):
            continue
        author = comment.get("author") or {}
        comments.append(
            {
                "authorEmail": author.get("emailAddress") or "",
                "body": _comment_body(comment.get("body")),
            }
        )
    return {"comments": comments}


def _comment_body(body: Any) -> str:
    if isinstance(body, dict):
        return to_plain_text(body)
    if isinstance(body, str):
        return body
    return ""


def _is_named(value: dict[str, Any], hint: str | None) -> bool:
    return "name" in value


def _named(value: dict[str, Any], hint: str | None) -> dict[str, Any]:
    named = {"name": value["name"]}
    if hint == "project" and value.get("key"):
        named["key"] = value["key"]
    return named


def _is_option(value: dict[str, Any], hint: str | None) -> bool:
    return "value" in value


def _option(value: dict[str, Any], hint: str | None) -> dict[str, Any]:
    option = {"value": value["value"]}
    if value.get("id"):
        option["id"] = value["id"]
    return option


# Order matters: first match wins.
DEFAULT_RULES: tuple[FieldRule, ...] = (
    FieldRule("actor", _is_actor, _actor),
    FieldRule("document", _is_document, _document),
    FieldRule("named", _is_named, _named),
    FieldRule("option", _is_option, _option),
    FieldRule("comments", _is_comment_collection, _comment_collection),
)


def normalize(
    value: Any,
    field_hint: str | None = None,
    rules: tuple[FieldRule, ...] = DEFAULT_RULES,
) -> Any:
    """Compact a field value into its canonical shape.

    Lists are normalized element-wise with the same hint. Dicts go through
    the first matching rule; unmatched dicts are rebuilt with each property
    normalized under its own key as hint. Everything else is returned as-is.

    Args:
        value: Raw field value.
        field_hint: Field id or property name the value was found under.
        rules: Ordered rule table.
    """
    if isinstance(value, list):
        return [normalize(item, field_hint, rules) for item in value]
    if not isinstance(value, dict):
        return value

    for rule in rules:
        if rule.matches(value, field_hint):
            return rule.transform(value, field_hint)

    return {key: normalize(item, key, rules) for key, item in value.items()}


def normalize_issue(issue: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``issue`` with its fields normalized.

    Null fields are kept as None. An object-valued rendered description
    is flattened to text.
    """
    cleaned = dict(issue)
    fields = issue.get("fields")
    if isinstance(fields, dict):
        cleaned["fields"] = {
            key: normalize(value, key)
            for key, value in fields.items()
        }

    rendered = issue.get("renderedFields")
    if isinstance(rendered, dict):
        rendered = dict(rendered)
        description = rendered.get("description")
        if isinstance(description, dict):
            rendered["description"] = to_plain_text(description)
        cleaned["renderedFields"] = rendered
    return cleaned


def rename_field_keys(fields: dict[str, Any], names: dict[str, str] | None) -> dict[str, Any]:
    """Replace field ids with display names where a mapping exists.

    ``names`` is the issue's ``names`` expansion (field id -> display name).
    Ids without a name keep their id.
    """
    if not names:
        return dict(fields)
    return {names.get(key, key): value for key, value in fields.items()}
