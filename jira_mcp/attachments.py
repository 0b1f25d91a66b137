# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Attachment file handling: decoding, fetching and upload validation."""

import base64
import binascii
import mimetypes
import re
from dataclasses import dataclass, field
from typing import Any, Literal
from urllib.parse import unquote, urlparse

import httpx
import structlog
from pydantic import BaseModel, Field

from .errors import ClassifiedError, ErrorOrigin
from .result import Err, Ok, Result

logger = structlog.get_logger(__name__)

# Jira Cloud default attachment limit
MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024

BLOCKED_EXTENSIONS = frozenset({".exe", ".bat", ".cmd", ".com", ".scr", ".vbs", ".js"})

DEFAULT_CONTENT_TYPE = "application/octet-stream"

_DATA_URL_PREFIX = re.compile(r"^data:[^;]*;base64,")
_CONTENT_DISPOSITION_FILENAME = re.compile(r"filename[^;=\n]*=((['\"]).*?\2|[^;\n]*)")


@dataclass(frozen=True)
class FileData:
    """A file ready for upload."""

    filename: str
    content: bytes = field(repr=False)
    content_type: str = DEFAULT_CONTENT_TYPE

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        _, dot, ext = self.filename.rpartition(".")
        return ext.lower() if dot else ""

    def as_upload(self) -> tuple[str, bytes, str]:
        return (self.filename, self.content, self.content_type)


class FileInput(BaseModel):
    """Where to read an attachment from."""

    source: Literal["url", "base64"]
    data: str = Field(..., description="URL or base64 payload (data URLs accepted)")
    filename: str | None = Field(None, description="Required for base64 input")
    content_type: str | None = Field(None, alias="contentType")

    model_config = {"populate_by_name": True}


def guess_content_type(filename: str) -> str:
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or DEFAULT_CONTENT_TYPE


def decode_base64_file(data: str, filename: str, content_type: str | None = None) -> Result[FileData]:
    """Decode a base64 payload, stripping any ``data:...;base64,`` prefix."""
    if not filename or not filename.strip():
        return Err(ClassifiedError.invalid_input("Filename is required for base64 files"))
    payload = _DATA_URL_PREFIX.sub("", data.strip())
    try:
        content = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        return Err(ClassifiedError.invalid_input(f"Invalid base64 data for {filename}: {e}"))
    return Ok(FileData(filename=filename, content=content, content_type=content_type or guess_content_type(filename)))


def filename_from_url(url: str) -> str | None:
    name = unquote(urlparse(url).path.rsplit("/", 1)[-1])
    return name or None


def filename_from_headers(headers: httpx.Headers) -> str | None:
    disposition = headers.get("content-disposition")
    if not disposition:
        return None
    match = _CONTENT_DISPOSITION_FILENAME.search(disposition)
    if not match:
        return None
    return match.group(1).strip("'\"") or None


async def fetch_file_from_url(
    url: str,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = 30.0,
) -> Result[FileData]:
    """Download a file to attach.

    The filename comes from the URL path, then Content-Disposition, then
    defaults to "attachment".
    """
    try:
        if http_client is not None:
            response = await http_client.get(url, timeout=timeout, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                response = await client.get(url)
    except httpx.RequestError as e:
        logger.warning("attachment_fetch_failed", url=url, error=type(e).__name__)
        return Err(
            ClassifiedError.unclassified(
                f"Failed to fetch file: {type(e).__name__}: {e}",
                ErrorOrigin.TRANSPORT,
                cause=e,
            )
        )

    if not response.is_success:
        logger.warning("attachment_fetch_failed", url=url, status_code=response.status_code)
        return Err(
            ClassifiedError.api_error(
                f"Failed to fetch file: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        )

    filename = filename_from_url(url) or filename_from_headers(response.headers) or "attachment"
    content_type = response.headers.get("content-type") or guess_content_type(filename)
    return Ok(FileData(filename=filename, content=response.content, content_type=content_type))


def validate_file_for_upload(file: FileData, max_bytes: int = MAX_ATTACHMENT_BYTES) -> Result[None]:
    """Reject files over the size limit or with an executable extension."""
    if file.size > max_bytes:
        return Err(
            ClassifiedError.invalid_input(
                f"File size ({format_file_size(file.size)}) exceeds Jira's "
                f"{format_file_size(max_bytes)} limit"
            )
        )
    if file.extension and f".{file.extension}" in BLOCKED_EXTENSIONS:
        return Err(ClassifiedError.invalid_input(f"File type .{file.extension} is not allowed for security reasons"))
    return Ok(None)


async def load_files(
    inputs: list[FileInput],
    http_client: httpx.AsyncClient | None = None,
) -> Result[list[FileData]]:
    """Read and validate every input. The first failure is returned."""
    files: list[FileData] = []
    for item in inputs:
        if item.source == "url":
            result = await fetch_file_from_url(item.data, http_client)
        else:
            result = decode_base64_file(item.data, item.filename or "", item.content_type)
        if isinstance(result, Err):
            return result

        file = result.value
        if item.filename and item.source == "url":
            file = FileData(filename=item.filename, content=file.content, content_type=item.content_type or file.content_type)
        validation = validate_file_for_upload(file)
        if isinstance(validation, Err):
            return validation
        files.append(file)
    return Ok(files)


def format_file_size(size: int) -> str:
    """Format a byte count as ``"1.5 MB"``."""
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{value:.1f} {units[unit]}"


def create_attachment_summary(attachments: list[dict[str, Any]]) -> str:
    """Summarize attachments returned by Jira after an upload."""
    if not attachments:
        return "No files were uploaded"
    lines = [f"Successfully uploaded {len(attachments)} file(s):"]
    for attachment in attachments:
        size = format_file_size(int(attachment.get("size") or 0))
        lines.append(f"- {attachment.get('filename', 'unknown')} ({size})")
    return "\n".join(lines)
