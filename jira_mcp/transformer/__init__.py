# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Rich text and field value transformers."""

from .adf import ADFDocument, ADFNode, from_plain_text, is_adf_document, to_plain_text
from .normalizer import DEFAULT_RULES, FieldRule, normalize, normalize_issue, rename_field_keys

__all__ = [
    "ADFDocument",
    "ADFNode",
    "from_plain_text",
    "is_adf_document",
    "to_plain_text",
    "DEFAULT_RULES",
    "FieldRule",
    "normalize",
    "normalize_issue",
    "rename_field_keys",
]
