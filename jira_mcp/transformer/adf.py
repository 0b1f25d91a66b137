# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Atlassian Document Format (ADF) <-> plain text.

Reading flattens a document tree to a single line of text. Writing only
synthesizes the minimal tree: one paragraph holding one text node.
Neither direction raises on unexpected input.
"""

import json
import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

# Leaf nodes that carry no readable text
SILENT_NODE_TYPES = frozenset({"media", "mediaSingle", "mediaGroup", "emoji"})

_WHITESPACE = re.compile(r"\s+")


class ADFNode(BaseModel):
    """Any ADF node. Unknown attributes are preserved."""

    model_config = ConfigDict(extra="allow")

    type: str
    text: str | None = None
    attrs: dict[str, Any] | None = None
    marks: list[dict[str, Any]] | None = None
    content: list["ADFNode"] | None = None


class ADFDocument(BaseModel):
    """Root ``doc`` node."""

    model_config = ConfigDict(extra="allow")

    type: Literal["doc"]
    version: int = 1
    content: list[ADFNode] = Field(default_factory=list)


def is_adf_document(value: Any) -> bool:
    """Return True if ``value`` is a well-formed ADF document."""
    if not isinstance(value, dict) or value.get("type") != "doc":
        return False
    try:
        ADFDocument.model_validate(value)
    except ValidationError:
        return False
    return True


def to_plain_text(tree: Any) -> str:
    """Flatten an ADF tree into plain text.

    Text nodes contribute their text, hard breaks a space, media and emoji
    nothing; every other node contributes its children. Fragments are joined
    with spaces, whitespace runs are collapsed and the result is trimmed.

    Args:
        tree: A ``doc`` dict, a list of nodes (children of an implicit doc),
            a plain string (returned as-is) or None.

    Returns:
        The plain text, or "" for anything that is not a document.
    """
    if isinstance(tree, str):
        return tree
    if isinstance(tree, list):
        roots = tree
    elif isinstance(tree, dict) and tree.get("type") == "doc":
        roots = tree.get("content") or []
    else:
        return ""

    fragments: list[str] = []
    stack: list[Any] = list(reversed(roots))
    while stack:
        node = stack.pop()
        if isinstance(node, list):
            stack.extend(reversed(node))
            continue
        if not isinstance(node, dict):
            continue

        node_type = node.get("type")
        if node_type == "text":
            text = node.get("text")
            if text is not None and text != "":
                fragments.append(text if isinstance(text, str) else str(text))
        elif node_type == "hardBreak":
            fragments.append(" ")
        elif node_type in SILENT_NODE_TYPES:
            continue
        else:
            children = node.get("content")
            if isinstance(children, list):
                stack.extend(reversed(children))

    return _WHITESPACE.sub(" ", " ".join(fragments)).strip()


def from_plain_text(value: Any) -> dict[str, Any]:
    """Wrap a value into a minimal ADF document.

    A valid ADF document is returned unchanged. Other values are coerced to
    text first: None becomes "", dicts and lists are JSON encoded, anything
    else goes through ``str()``.
    """
    if is_adf_document(value):
        return value
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": _coerce_text(value)}],
            }
        ],
    }


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)
