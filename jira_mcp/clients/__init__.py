# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""HTTP clients."""

from .executor import RequestExecutor, classify_response, extract_error_message

__all__ = ["RequestExecutor", "classify_response", "extract_error_message"]
