"""
Shared plumbing for the Linkbrain and Threads MCP servers.

Holds the pieces both bridges use the same way: credential holder, error
taxonomy, query shaping, output truncation and the tool-result envelope.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

import httpx
from mcp.types import CallToolResult, TextContent
from pydantic import BaseModel, ConfigDict, field_validator

# ─── Constants ───────────────────────────────────────────────────────────────

CHARACTER_LIMIT = 25000
REQUEST_TIMEOUT = 30.0
TRUNCATION_NOTICE = (
    "\n\n[Response truncated at 25000 characters. "
    "Narrow the request with a smaller 'limit' or a tighter date range.]"
)

logger = logging.getLogger("mcp_bridge")


class ResponseFormat(str, Enum):
    """Output rendering selected by the caller."""

    MARKDOWN = "markdown"
    JSON = "json"


class Credential(BaseModel):
    """API key or access token plus the base URL it is valid for."""

    model_config = ConfigDict(frozen=True)

    token: str
    base_url: str

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


# ─── Error Taxonomy ──────────────────────────────────────────────────────────


class BridgeError(Exception):
    """A failure that has already been classified for the caller."""

    kind = "unknown"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthError(BridgeError):
    kind = "auth"


class RateLimitError(BridgeError):
    kind = "rate_limit"


class InvalidParameterError(BridgeError):
    kind = "invalid_parameter"


class UpstreamAPIError(BridgeError):
    kind = "api_error"


class RequestTimeoutError(BridgeError):
    kind = "timeout"


class NetworkError(BridgeError):
    kind = "network"


class UnknownError(BridgeError):
    kind = "unknown"


class ContainerNotReadyError(BridgeError):
    """Raised when a staged media container never reaches a publishable state."""

    kind = "container_not_ready"


def classify_transport_error(exc: httpx.HTTPError) -> BridgeError:
    """Map an httpx transport failure (no usable response) to a classified error."""
    if isinstance(exc, httpx.TimeoutException):
        return RequestTimeoutError("Request timed out. Please try again.")
    return NetworkError(f"Network error: {exc}")


# ─── Request Shaping ─────────────────────────────────────────────────────────


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (list, tuple)):
        return ",".join(_query_value(v) for v in value)
    return str(value)


def build_query(params: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Render query parameters, dropping absent and empty values."""
    query: Dict[str, str] = {}
    for key, value in (params or {}).items():
        if value is None or value == "":
            continue
        if isinstance(value, (list, tuple)) and not value:
            continue
        query[key] = _query_value(value)
    return query


def compact(body: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop None values from a JSON request body."""
    return {k: v for k, v in body.items() if v is not None}


# ─── Formatting Helpers ──────────────────────────────────────────────────────


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def format_timestamp(value: Union[str, int, float, None]) -> str:
    """Convert an ISO-8601 string or Unix timestamp to a readable UTC string."""
    if value is None or value == "":
        return "N/A"
    if isinstance(value, (int, float)):
        dt = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        try:
            dt = datetime.strptime(value, "%Y-%m-%dT%H:%M:%S%z")
        except ValueError:
            try:
                dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return value
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def truncate_text(text: str) -> str:
    """Cap output at CHARACTER_LIMIT and say so when it happens."""
    if len(text) <= CHARACTER_LIMIT:
        return text
    return text[:CHARACTER_LIMIT] + TRUNCATION_NOTICE


# ─── Tool Result Envelope ────────────────────────────────────────────────────


def text_result(text: str) -> CallToolResult:
    return CallToolResult(
        content=[TextContent(type="text", text=truncate_text(text))],
        isError=False,
    )


def error_result(message: str) -> CallToolResult:
    return CallToolResult(
        content=[TextContent(type="text", text=f"Error: {message}")],
        isError=True,
    )


def handle_tool_error(e: Exception) -> CallToolResult:
    """Consistent error formatting at the tool boundary."""
    if isinstance(e, BridgeError):
        logger.warning("%s: %s", e.kind, e.message)
        return error_result(e.message)
    if isinstance(e, httpx.HTTPError):
        classified = classify_transport_error(e)
        logger.warning("%s: %s", classified.kind, classified.message)
        return error_result(classified.message)
    logger.error("Unclassified tool failure", exc_info=e)
    return error_result(f"Unexpected error: {type(e).__name__}: {e}")


# ─── Process Setup ───────────────────────────────────────────────────────────


def configure_logging() -> None:
    """Send log records to stderr; stdout belongs to the stdio transport."""
    level = os.environ.get("MCP_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def require_env(name: str, remediation: str) -> str:
    """Return a mandatory environment variable or exit with a remediation hint."""
    value = os.environ.get(name, "").strip()
    if not value:
        print(f"ERROR: {name} environment variable is required.", file=sys.stderr)
        print(remediation, file=sys.stderr)
        sys.exit(1)
    return value
