# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Jira domain services."""

from .jira import JiraService

__all__ = ["JiraService"]
