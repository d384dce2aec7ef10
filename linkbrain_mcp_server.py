#!/usr/bin/env python3
"""
Linkbrain MCP Server
Connects Claude Desktop to Linkbrain's Second Brain API (clips, collections,
categories, tags, AI generation and webhooks).

Setup:
  1. pip install -e .
  2. Get your API key from https://linkbrain.cloud/settings?tab=api
  3. Set LINKBRAIN_API_KEY (and optionally LINKBRAIN_API_URL)
  4. Add `linkbrain-mcp` to claude_desktop_config.json
"""

import logging
import os
from typing import Any, Dict, List, Literal, Optional
from urllib.parse import urlparse

import httpx
from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from mcp_bridge_common import (
    REQUEST_TIMEOUT,
    AuthError,
    Credential,
    RateLimitError,
    ResponseFormat,
    UnknownError,
    UpstreamAPIError,
    build_query,
    classify_transport_error,
    compact,
    configure_logging,
    format_timestamp,
    handle_tool_error,
    require_env,
    text_result,
    to_json,
)

# ─── Configuration ───────────────────────────────────────────────────────────

DEFAULT_API_URL = "https://linkbrain.cloud"
API_PREFIX = "/api/v1"
DEFAULT_CLIP_LIMIT = 20
TAG_SCAN_PAGE_SIZE = 100

logger = logging.getLogger("linkbrain_mcp")

mcp = FastMCP("linkbrain_mcp")

# ─── HTTP Client ─────────────────────────────────────────────────────────────


class ApiErrorBody(BaseModel):
    code: Optional[Any] = None
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ApiEnvelope(BaseModel):
    """Linkbrain response wrapper: {success?, data?, error?, meta?}."""
    model_config = ConfigDict(extra="allow")

    success: Optional[bool] = None
    error: Optional[ApiErrorBody] = None
    meta: Optional[Dict[str, Any]] = None


def _error_for_status(status: int) -> type:
    if status in (401, 403):
        return AuthError
    if status == 429:
        return RateLimitError
    return UpstreamAPIError


class LinkbrainClient:
    """HTTP client for the Linkbrain v1 API, authenticated via X-API-Key."""

    def __init__(
        self,
        credential: Credential,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self._credential = credential
        self._transport = transport
        self._timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-API-Key": self._credential.token,
        }

    async def request(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        query: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Perform one call and return the unwrapped `data` payload."""
        url = f"{self._credential.base_url}{API_PREFIX}{path}"
        logger.debug("%s %s", method, path)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method,
                    url,
                    headers=self._headers(),
                    params=build_query(query),
                    json=body,
                )
        except httpx.HTTPError as e:
            raise classify_transport_error(e) from e
        return self._unwrap(response)

    @staticmethod
    def _unwrap(response: httpx.Response) -> Any:
        status = response.status_code
        has_payload = bool(response.content)
        payload: Any = None
        if has_payload:
            try:
                payload = response.json()
            except ValueError:
                if response.is_success:
                    raise UnknownError(
                        f"Linkbrain returned a non-JSON response (HTTP {status})."
                    )
                has_payload = False

        if not has_payload and response.is_success:
            return None

        envelope: Optional[ApiEnvelope] = None
        if isinstance(payload, dict):
            try:
                envelope = ApiEnvelope.model_validate(payload)
            except ValidationError:
                envelope = None

        if not response.is_success or (envelope is not None and envelope.success is False):
            err = envelope.error if envelope else None
            code = err.code if err and err.code else "UNKNOWN_ERROR"
            message = (
                err.message
                if err and err.message
                else f"API error {status}: {response.reason_phrase}"
            )
            raise _error_for_status(status)(f"[{code}] {message}", status_code=status)

        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    # ── Clips ──

    async def list_clips(self, filters: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", "/clips", query=filters)

    async def get_clip(self, clip_id: str) -> Any:
        return await self.request("GET", "/clips-detail", query={"id": clip_id})

    async def get_clip_content(self, clip_id: str) -> Any:
        return await self.request(
            "GET", "/clips-detail", query={"id": clip_id, "content": True}
        )

    async def create_clip(self, data: Dict[str, Any]) -> Any:
        return await self.request("POST", "/clips", body=compact(data))

    async def update_clip(self, clip_id: str, data: Dict[str, Any]) -> Any:
        return await self.request(
            "PATCH", "/clips-detail", body=compact(data), query={"id": clip_id}
        )

    async def delete_clip(self, clip_id: str) -> Any:
        return await self.request("DELETE", "/clips-detail", query={"id": clip_id})

    async def search_clips(self, q: str, filters: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", "/search", query={"q": q, **(filters or {})})

    # ── Collections ──

    async def list_collections(self) -> Any:
        return await self.request("GET", "/collections")

    async def create_collection(self, data: Dict[str, Any]) -> Any:
        return await self.request("POST", "/collections", body=compact(data))

    async def update_collection(self, collection_id: str, data: Dict[str, Any]) -> Any:
        return await self.request(
            "PATCH", "/collections", body=compact(data), query={"id": collection_id}
        )

    async def delete_collection(self, collection_id: str) -> Any:
        return await self.request("DELETE", "/collections", query={"id": collection_id})

    # ── AI ──

    async def generate_content(
        self, content_type: str, clip_ids: List[str], language: Optional[str] = None
    ) -> Any:
        body = {"action": "generate", "type": content_type, "clipIds": clip_ids, "language": language}
        return await self.request("POST", "/ai", body=compact(body))

    async def analyze_url(self, url: str) -> Any:
        return await self.request("POST", "/ai", body={"action": "analyze", "url": url})

    async def ask(
        self,
        message: str,
        clip_ids: Optional[List[str]] = None,
        language: Optional[str] = None,
    ) -> Any:
        body = {"action": "ask", "message": message, "clipIds": clip_ids, "language": language}
        return await self.request("POST", "/ai", body=compact(body))

    async def get_insights(
        self,
        period: Optional[str] = None,
        days: Optional[int] = None,
        language: Optional[str] = None,
    ) -> Any:
        body = {"action": "insights", "period": period, "days": days, "language": language}
        return await self.request("POST", "/ai", body=compact(body))

    # ── Categories ──

    async def list_categories(self) -> Any:
        return await self.request("GET", "/manage", query={"action": "categories"})

    async def create_category(self, name: str, color: Optional[str] = None) -> Any:
        return await self.request(
            "POST",
            "/manage",
            body=compact({"name": name, "color": color}),
            query={"action": "categories"},
        )

    # ── Tags ──

    async def list_tags(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Aggregate keyword frequencies over one page of recent clips.

        There is no tag endpoint, so counts cover at most TAG_SCAN_PAGE_SIZE
        clips. Equal counts keep first-seen order.
        """
        result = await self.request(
            "GET", "/clips", query={"limit": TAG_SCAN_PAGE_SIZE}
        )
        counts: Dict[str, int] = {}
        for clip in extract_items(result) or []:
            if not isinstance(clip, dict):
                continue
            for keyword in clip.get("keywords") or []:
                if not isinstance(keyword, str):
                    continue
                counts[keyword] = counts.get(keyword, 0) + 1

        tags = [{"name": name, "count": count} for name, count in counts.items()]
        tags.sort(key=lambda t: t["count"], reverse=True)
        return tags[:limit] if limit else tags

    async def search_by_tags(
        self,
        tags: List[str],
        match: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Any:
        query = {"action": "tags", "tags": tags, "match": match, "limit": limit, "offset": offset}
        return await self.request("GET", "/manage", query=query)

    # ── Bulk ──

    async def bulk_update(self, data: Dict[str, Any]) -> Any:
        return await self.request(
            "POST", "/manage", body=compact(data), query={"action": "bulk"}
        )

    # ── Webhooks ──

    async def list_webhooks(self) -> Any:
        return await self.request("GET", "/manage", query={"action": "webhooks"})

    async def create_webhook(
        self, url: str, events: List[str], label: Optional[str] = None
    ) -> Any:
        return await self.request(
            "POST",
            "/manage",
            body=compact({"url": url, "events": events, "label": label}),
            query={"action": "webhooks"},
        )

    async def delete_webhook(self, webhook_id: str) -> Any:
        return await self.request(
            "DELETE", "/manage", query={"action": "webhooks", "id": webhook_id}
        )


_client: Optional[LinkbrainClient] = None


def set_client(client: Optional[LinkbrainClient]) -> None:
    global _client
    _client = client


def _get_client() -> LinkbrainClient:
    if _client is None:
        raise AuthError(
            "LINKBRAIN_API_KEY is not configured. "
            "Get your API key from https://linkbrain.cloud/settings?tab=api"
        )
    return _client


# ─── Formatting Helpers ──────────────────────────────────────────────────────


def extract_items(payload: Any) -> Optional[List[Any]]:
    """Find the record list in a payload that may be bare or wrapped."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("data", "clips", "items", "results", "collections",
                    "categories", "webhooks", "tags"):
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return None


def _shorten(text: str, limit: int = 300) -> str:
    return f"{text[:limit]}{'...' if len(text) > limit else ''}"


def _format_clip(clip: Dict) -> str:
    """Format a clip for display."""
    title = clip.get("title") or "Untitled"
    cid = clip.get("id", "?")
    saved = format_timestamp(clip.get("createdAt"))
    meta = [p for p in (clip.get("category"), clip.get("platform")) if p]
    meta.append(f"Saved: {saved}")

    lines = [
        f"**{title}** (ID: {cid})",
        f"  {' | '.join(meta)}",
    ]
    if clip.get("url"):
        lines.append(f"  URL: {clip['url']}")
    if clip.get("summary"):
        lines.append(f"  Summary: {_shorten(clip['summary'])}")
    keywords = clip.get("keywords") or []
    if keywords:
        lines.append(f"  Keywords: {', '.join(keywords)}")

    flags = [
        label
        for key, label in (
            ("isFavorite", "FAVORITE"),
            ("isReadLater", "READ LATER"),
            ("isArchived", "ARCHIVED"),
        )
        if clip.get(key)
    ]
    if flags:
        lines.append(f"  [{'] ['.join(flags)}]")
    lines.append("---")
    return "\n".join(lines)


def _format_clip_detail(clip: Dict) -> str:
    lines = [_format_clip(clip).rsplit("\n---", 1)[0]]
    if clip.get("notes"):
        lines.append(f"  Notes: {clip['notes']}")
    if clip.get("keyTakeaways"):
        lines.append(f"  Key takeaways: {clip['keyTakeaways']}")
    collections = clip.get("collectionIds") or []
    if collections:
        lines.append(f"  Collections: {', '.join(collections)}")
    if clip.get("updatedAt"):
        lines.append(f"  Updated: {format_timestamp(clip['updatedAt'])}")
    return "\n".join(lines)


def _format_clip_list(clips: List[Dict], heading: str, limit: int, offset: int) -> str:
    lines = [f"**{heading}**\n"]
    lines.extend(_format_clip(c) for c in clips)
    if len(clips) >= limit:
        lines.append(f"\n_More results may be available with offset {offset + len(clips)}._")
    return "\n".join(lines)


def _format_collection(collection: Dict) -> str:
    name = collection.get("name") or "Unnamed"
    parts = [f"ID: {collection.get('id', '?')}"]
    count = collection.get("clipCount")
    if count is not None:
        parts.append(f"{count} clip(s)")
    parts.append("public" if collection.get("isPublic") else "private")
    if collection.get("color"):
        parts.append(collection["color"])
    return f"  • {name} — {' | '.join(parts)}"


def _format_category(category: Dict) -> str:
    name = category.get("name") or "?"
    count = category.get("count", category.get("clipCount"))
    suffix = f" — {count} clip(s)" if count is not None else ""
    return f"  • {name}{suffix}"


def _format_webhook(hook: Dict) -> str:
    label = hook.get("label") or hook.get("url", "?")
    events = ", ".join(hook.get("events") or [])
    status = "active" if hook.get("isActive", hook.get("active", True)) else "inactive"
    lines = [f"  • {label} (ID: {hook.get('id', '?')}) — {status}"]
    if hook.get("label") and hook.get("url"):
        lines.append(f"    URL: {hook['url']}")
    if events:
        lines.append(f"    Events: {events}")
    return "\n".join(lines)


def _render_collection(
    payload: Any,
    response_format: ResponseFormat,
    empty_message: str,
    render_markdown,
) -> CallToolResult:
    """Shared empty/json/markdown handling for list-style read tools."""
    items = extract_items(payload)
    if items is None and payload:
        return text_result(to_json(payload))
    if not items:
        return text_result(empty_message)
    if response_format == ResponseFormat.JSON:
        return text_result(to_json(payload))
    return text_result(render_markdown(items))


def _write_result(data: Any, fallback: str) -> CallToolResult:
    if data is None:
        return text_result(fallback)
    return text_result(to_json(data))


# ─── Input Models ────────────────────────────────────────────────────────────


def _check_url(v: str) -> str:
    parsed = urlparse(v)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return v


class LinkbrainInput(BaseModel):
    """Base for Linkbrain tool inputs; argument names are camelCase on the wire."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ClipFilters(LinkbrainInput):
    category: Optional[str] = Field(default=None, description='Filter by category (e.g., "AI", "Design")')
    platform: Optional[str] = Field(default=None, description='Filter by platform (e.g., "youtube", "twitter")')
    collection_id: Optional[str] = Field(default=None, description="Filter by collection ID")
    is_favorite: Optional[bool] = Field(default=None, description="Filter favorites only")
    is_read_later: Optional[bool] = Field(default=None, description="Filter read-later only")
    offset: Optional[int] = Field(default=None, description="Pagination offset", ge=0)
    include_content: bool = Field(
        default=False,
        description="Include full original content (rawMarkdown, contentMarkdown, htmlContent). Default false.",
    )
    response_format: ResponseFormat = Field(
        default=ResponseFormat.JSON,
        description="Output format: 'json' for structured data (default) or 'markdown' for human-readable",
    )

    def to_query(self) -> Dict[str, Any]:
        query = self.model_dump(
            by_alias=True,
            exclude_none=True,
            exclude={"include_content", "response_format", "q"},
        )
        query["content"] = True if self.include_content else None
        return query


class ListClipsInput(ClipFilters):
    """Input for listing clips."""

    is_archived: Optional[bool] = Field(default=None, description="Filter archived only")
    from_: Optional[str] = Field(default=None, alias="from", description='Start date (ISO-8601, e.g., "2025-01-01")')
    to: Optional[str] = Field(default=None, description='End date (ISO-8601, e.g., "2025-12-31")')
    search: Optional[str] = Field(default=None, description="Text search across title, summary, keywords")
    limit: Optional[int] = Field(default=None, description="Number of results (default 20, max 100)", ge=1, le=100)
    sort: Optional[str] = Field(default=None, description='Sort field (e.g., "createdAt", "title")')
    order: Optional[Literal["asc", "desc"]] = Field(default=None, description="Sort order")


class SearchClipsInput(ClipFilters):
    """Input for keyword search over clips."""

    q: str = Field(..., description="Search query", min_length=1)
    limit: Optional[int] = Field(default=None, description="Number of results (default 20, max 50)", ge=1, le=50)


class ClipIdInput(LinkbrainInput):
    """Input addressing a single clip."""

    id: str = Field(..., description="Clip ID", min_length=1)
    response_format: ResponseFormat = Field(
        default=ResponseFormat.JSON,
        description="Output format: 'json' (default) or 'markdown'",
    )


class DeleteClipInput(LinkbrainInput):
    id: str = Field(..., description="Clip ID to delete", min_length=1)


class CreateClipInput(LinkbrainInput):
    """Input for saving a new clip."""

    url: str = Field(..., description="URL to save", min_length=1)
    title: Optional[str] = Field(default=None, description="Custom title (auto-extracted if omitted)")
    summary: Optional[str] = Field(default=None, description="Custom summary")
    category: Optional[str] = Field(default=None, description="Category name")
    keywords: Optional[List[str]] = Field(default=None, description="Keywords/tags")
    notes: Optional[str] = Field(default=None, description="Personal notes")
    collection_ids: Optional[List[str]] = Field(default=None, description="Collection IDs to add to")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _check_url(v)


class UpdateClipInput(LinkbrainInput):
    """Input for updating clip metadata; omitted fields are left unchanged."""

    id: str = Field(..., description="Clip ID", min_length=1)
    title: Optional[str] = Field(default=None, description="New title")
    summary: Optional[str] = Field(default=None, description="New summary")
    notes: Optional[str] = Field(default=None, description="New notes")
    key_takeaways: Optional[str] = Field(default=None, description="New key takeaways")
    category: Optional[str] = Field(default=None, description="New category")
    keywords: Optional[List[str]] = Field(default=None, description="New keywords")
    collection_ids: Optional[List[str]] = Field(default=None, description="New collection IDs")
    is_favorite: Optional[bool] = Field(default=None, description="Set favorite status")
    is_read_later: Optional[bool] = Field(default=None, description="Set read-later status")
    is_archived: Optional[bool] = Field(default=None, description="Set archived status")


class GenerateContentInput(LinkbrainInput):
    type: str = Field(
        ...,
        description='Content type (e.g., "blog-post", "report", "newsletter", "sns-post", "quiz")',
        min_length=1,
    )
    clip_ids: List[str] = Field(..., description="Clip IDs to use as source material", min_length=1)
    language: Optional[Literal["ko", "en"]] = Field(default=None, description="Output language (default: ko)")


class AnalyzeUrlInput(LinkbrainInput):
    url: str = Field(..., description="URL to analyze", min_length=1)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _check_url(v)


class AskClipsInput(LinkbrainInput):
    message: str = Field(..., description="Question to ask", min_length=1)
    clip_ids: Optional[List[str]] = Field(default=None, description="Clip IDs for context (up to 20)", max_length=20)
    language: Optional[Literal["ko", "en"]] = Field(default=None, description="Response language (default: ko)")


class GetInsightsInput(LinkbrainInput):
    period: Optional[Literal["week", "month", "quarter", "custom"]] = Field(
        default=None, description="Time period (default: week)"
    )
    days: Optional[int] = Field(default=None, description="Custom number of days (for period=custom)", ge=1, le=365)
    language: Optional[Literal["ko", "en"]] = Field(default=None, description="Report language (default: ko)")


class ListInput(LinkbrainInput):
    """Input for parameterless list tools."""

    response_format: ResponseFormat = Field(
        default=ResponseFormat.JSON,
        description="Output format: 'json' (default) or 'markdown'",
    )


class CreateCollectionInput(LinkbrainInput):
    name: str = Field(..., description="Collection name", min_length=1)
    color: Optional[str] = Field(default=None, description='Color hex code (e.g., "#FF5733")')
    is_public: Optional[bool] = Field(default=None, description="Whether the collection is publicly shareable")


class UpdateCollectionInput(LinkbrainInput):
    id: str = Field(..., description="Collection ID", min_length=1)
    name: Optional[str] = Field(default=None, description="New name")
    color: Optional[str] = Field(default=None, description="New color hex code")
    is_public: Optional[bool] = Field(default=None, description="New visibility setting")


class DeleteCollectionInput(LinkbrainInput):
    id: str = Field(..., description="Collection ID to delete", min_length=1)


class CreateCategoryInput(LinkbrainInput):
    name: str = Field(..., description="Category name", min_length=1)
    color: Optional[str] = Field(default=None, description='Color hex code (e.g., "#FF5733")')


class ListTagsInput(ListInput):
    limit: Optional[int] = Field(default=None, description="Max tags to return", ge=1, le=100)


class SearchByTagsInput(LinkbrainInput):
    tags: List[str] = Field(..., description="Tags to search for", min_length=1)
    match: Optional[Literal["all", "any"]] = Field(
        default=None, description='Match mode: "all" (AND) or "any" (OR, default)'
    )
    limit: Optional[int] = Field(default=None, description="Number of results", ge=1, le=50)
    offset: Optional[int] = Field(default=None, description="Pagination offset", ge=0)
    response_format: ResponseFormat = Field(
        default=ResponseFormat.JSON,
        description="Output format: 'json' (default) or 'markdown'",
    )


class BulkUpdateInput(LinkbrainInput):
    action: Literal["delete", "move", "tag", "favorite", "archive"] = Field(
        ..., description="Bulk action to perform"
    )
    ids: List[str] = Field(..., description="Clip IDs to update", min_length=1, max_length=100)
    category: Optional[str] = Field(default=None, description='Target category (required for "move" action)')
    tags: Optional[List[str]] = Field(default=None, description='Tags to add (required for "tag" action)')
    value: Optional[bool] = Field(
        default=None, description='Boolean value for "favorite" and "archive" actions (default: true)'
    )

    @model_validator(mode="after")
    def check_action_arguments(self) -> "BulkUpdateInput":
        if self.action == "move" and not self.category:
            raise ValueError("'category' is required for the move action")
        if self.action == "tag" and not self.tags:
            raise ValueError("'tags' is required for the tag action")
        return self


class CreateWebhookInput(LinkbrainInput):
    url: str = Field(..., description="Webhook URL (must be HTTPS)", min_length=1)
    events: List[str] = Field(
        ...,
        description=(
            "Events to subscribe to: clip.created, clip.updated, clip.deleted, clip.analyzed, "
            "content.generated, collection.created, collection.updated"
        ),
        min_length=1,
    )
    label: Optional[str] = Field(default=None, description="Human-readable label for this webhook", max_length=50)

    @field_validator("url")
    @classmethod
    def require_https(cls, v: str) -> str:
        _check_url(v)
        if not v.lower().startswith("https://"):
            raise ValueError("webhook URL must use HTTPS")
        return v


class DeleteWebhookInput(LinkbrainInput):
    id: str = Field(..., description="Webhook subscription ID to delete", min_length=1)


_READ_ONLY = {
    "readOnlyHint": True,
    "destructiveHint": False,
    "idempotentHint": True,
    "openWorldHint": True,
}


def _annotations(title: str, **overrides: bool) -> Dict[str, Any]:
    return {"title": title, **_READ_ONLY, **overrides}


_CREATE = {"readOnlyHint": False, "idempotentHint": False}
_UPDATE = {"readOnlyHint": False, "idempotentHint": True}
_DELETE = {"readOnlyHint": False, "destructiveHint": True, "idempotentHint": True}


# ─── Clip Tools ──────────────────────────────────────────────────────────────


@mcp.tool(name="list_clips", annotations=_annotations("List Clips"))
async def list_clips(params: ListClipsInput) -> CallToolResult:
    """List saved clips with optional filters.

    Supports category, platform, collection, favorites, read-later, archived,
    date range (from/to, ISO-8601), text search, pagination (limit 1-100,
    default 20; offset) and sorting (sort field, order asc|desc). Use
    includeContent=true to get the full original text (rawMarkdown) of each clip.

    Args:
        params: Filters, pagination and responseFormat ('json' default, or 'markdown').

    Returns:
        CallToolResult: Matching clips, or a "No clips found." message.
    """
    try:
        query = params.to_query()
        data = await _get_client().list_clips(query)
        limit = params.limit or DEFAULT_CLIP_LIMIT
        offset = params.offset or 0
        return _render_collection(
            data,
            params.response_format,
            "No clips found.",
            lambda clips: _format_clip_list(clips, f"{len(clips)} clip(s)", limit, offset),
        )
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="get_clip", annotations=_annotations("Get Clip"))
async def get_clip(params: ClipIdInput) -> CallToolResult:
    """Get detailed information about a specific clip.

    Returns title, URL, summary, keywords, notes, category, collections and flags.
    """
    try:
        clip = await _get_client().get_clip(params.id)
        if params.response_format == ResponseFormat.JSON or not isinstance(clip, dict):
            return text_result(to_json(clip))
        return text_result(_format_clip_detail(clip))
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="get_clip_content", annotations=_annotations("Get Clip Content"))
async def get_clip_content(params: ClipIdInput) -> CallToolResult:
    """Get the full original content of a clip.

    The complete text extracted from the source URL, in markdown/HTML format.
    Long documents are truncated at 25,000 characters.
    """
    try:
        clip = await _get_client().get_clip_content(params.id)
        if params.response_format == ResponseFormat.JSON or not isinstance(clip, dict):
            return text_result(to_json(clip))
        body = (
            clip.get("rawMarkdown")
            or clip.get("contentMarkdown")
            or clip.get("htmlContent")
            or "_No stored content for this clip._"
        )
        header = f"# {clip.get('title') or 'Untitled'} (ID: {clip.get('id', params.id)})"
        if clip.get("url"):
            header += f"\nSource: {clip['url']}"
        return text_result(f"{header}\n\n{body}")
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="search_clips", annotations=_annotations("Search Clips"))
async def search_clips(params: SearchClipsInput) -> CallToolResult:
    """Search clips by keyword query.

    Searches across titles, summaries, keywords, notes, and content. Supports
    category, platform, collection, favorite and read-later filters, limit
    (1-50, default 20) and offset. Use includeContent=true to get the full
    original text (rawMarkdown) of each clip.
    """
    try:
        data = await _get_client().search_clips(params.q, params.to_query())
        limit = params.limit or DEFAULT_CLIP_LIMIT
        offset = params.offset or 0
        return _render_collection(
            data,
            params.response_format,
            f"No clips found matching '{params.q}'.",
            lambda clips: _format_clip_list(
                clips, f"Found {len(clips)} clip(s) matching '{params.q}'", limit, offset
            ),
        )
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="create_clip", annotations=_annotations("Save Clip", **_CREATE))
async def create_clip(params: CreateClipInput) -> CallToolResult:
    """Save a new clip (bookmark) from a URL.

    The URL is automatically analyzed to extract title, summary, keywords, and
    category. You can optionally override these.
    """
    try:
        data = await _get_client().create_clip(params.model_dump(by_alias=True))
        return _write_result(data, f"Clip saved for {params.url}.")
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="update_clip", annotations=_annotations("Update Clip", **_UPDATE))
async def update_clip(params: UpdateClipInput) -> CallToolResult:
    """Update a clip's metadata.

    Title, summary, notes, key takeaways, category, keywords, collections and
    favorite/read-later/archived status. Only the fields you pass are changed.
    """
    try:
        changes = params.model_dump(by_alias=True, exclude_none=True, exclude={"id"})
        data = await _get_client().update_clip(params.id, changes)
        return _write_result(data, f"Clip {params.id} updated.")
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="delete_clip", annotations=_annotations("Delete Clip", **_DELETE))
async def delete_clip(params: DeleteClipInput) -> CallToolResult:
    """Permanently delete a clip. Also removes it from any collections."""
    try:
        data = await _get_client().delete_clip(params.id)
        return _write_result(data, f"Clip {params.id} deleted.")
    except Exception as e:
        return handle_tool_error(e)


# ─── AI Tools ────────────────────────────────────────────────────────────────


@mcp.tool(name="generate_content", annotations=_annotations("Generate Content", **_CREATE))
async def generate_content(params: GenerateContentInput) -> CallToolResult:
    """Generate content from clips using AI. Consumes credits.

    Available types: report, planning, trend, big-picture, step-by-step,
    chapter-lessons, simplify, key-concepts, quiz, visual-map, review-notes,
    teach-back, sns-post, newsletter, presentation, email-draft, blog-post,
    executive-summary. language is 'ko' (default) or 'en'.
    """
    try:
        data = await _get_client().generate_content(params.type, params.clip_ids, params.language)
        return text_result(to_json(data))
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="analyze_url", annotations=_annotations("Analyze URL", **_CREATE))
async def analyze_url(params: AnalyzeUrlInput) -> CallToolResult:
    """Analyze a URL using AI. Consumes credits.

    Extracts title, summary, keywords, category, and other metadata without
    saving a clip.
    """
    try:
        data = await _get_client().analyze_url(params.url)
        return text_result(to_json(data))
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="ask_clips", annotations=_annotations("Ask Clips", **_CREATE))
async def ask_clips(params: AskClipsInput) -> CallToolResult:
    """Ask AI a question with optional clip context. Consumes credits.

    The AI answers based on the content of the specified clips (up to 20).
    """
    try:
        data = await _get_client().ask(params.message, params.clip_ids, params.language)
        return text_result(to_json(data))
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="get_insights", annotations=_annotations("Get Insights", **_CREATE))
async def get_insights(params: GetInsightsInput) -> CallToolResult:
    """Generate an insights report over a time period. Consumes credits.

    Analyzes reading patterns, topic trends, and recommendations. period is
    week (default), month, quarter or custom; days (1-365) applies to custom.
    """
    try:
        data = await _get_client().get_insights(params.period, params.days, params.language)
        return text_result(to_json(data))
    except Exception as e:
        return handle_tool_error(e)


# ─── Collection Tools ────────────────────────────────────────────────────────


@mcp.tool(name="list_collections", annotations=_annotations("List Collections"))
async def list_collections(params: ListInput) -> CallToolResult:
    """List all collections (folders for organizing clips)."""
    try:
        data = await _get_client().list_collections()
        return _render_collection(
            data,
            params.response_format,
            "No collections found.",
            lambda items: "\n".join(
                [f"**{len(items)} collection(s):**\n"] + [_format_collection(c) for c in items]
            ),
        )
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="create_collection", annotations=_annotations("Create Collection", **_CREATE))
async def create_collection(params: CreateCollectionInput) -> CallToolResult:
    """Create a new collection (folder) for organizing clips."""
    try:
        data = await _get_client().create_collection(params.model_dump(by_alias=True))
        return _write_result(data, f"Collection '{params.name}' created.")
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="update_collection", annotations=_annotations("Update Collection", **_UPDATE))
async def update_collection(params: UpdateCollectionInput) -> CallToolResult:
    """Update a collection's name, color, or visibility."""
    try:
        changes = params.model_dump(by_alias=True, exclude_none=True, exclude={"id"})
        data = await _get_client().update_collection(params.id, changes)
        return _write_result(data, f"Collection {params.id} updated.")
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="delete_collection", annotations=_annotations("Delete Collection", **_DELETE))
async def delete_collection(params: DeleteCollectionInput) -> CallToolResult:
    """Delete a collection.

    Clips in the collection are not deleted, only the collection reference is removed.
    """
    try:
        data = await _get_client().delete_collection(params.id)
        return _write_result(data, f"Collection {params.id} deleted.")
    except Exception as e:
        return handle_tool_error(e)


# ─── Category & Tag Tools ────────────────────────────────────────────────────


@mcp.tool(name="list_categories", annotations=_annotations("List Categories"))
async def list_categories(params: ListInput) -> CallToolResult:
    """List all categories with clip counts, sorted by frequency."""
    try:
        data = await _get_client().list_categories()
        return _render_collection(
            data,
            params.response_format,
            "No categories found.",
            lambda items: "\n".join(
                [f"**{len(items)} categor{'y' if len(items) == 1 else 'ies'}:**\n"]
                + [_format_category(c) for c in items]
            ),
        )
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="create_category", annotations=_annotations("Create Category", **_CREATE))
async def create_category(params: CreateCategoryInput) -> CallToolResult:
    """Create a new custom category for organizing clips."""
    try:
        data = await _get_client().create_category(params.name, params.color)
        return _write_result(data, f"Category '{params.name}' created.")
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="list_tags", annotations=_annotations("List Tags"))
async def list_tags(params: ListTagsInput) -> CallToolResult:
    """List tags (keywords) used across clips, sorted by frequency.

    Aggregated from the keywords of the 100 most recent clips only: Linkbrain
    has no tag index, so counts are approximate and tags used only on older
    clips are not listed. Equal counts keep first-seen order.
    """
    try:
        tags = await _get_client().list_tags(params.limit)
        return _render_collection(
            tags,
            params.response_format,
            "No tags found.",
            lambda items: "\n".join(
                [f"**{len(items)} tag(s)** (from the {TAG_SCAN_PAGE_SIZE} most recent clips):\n"]
                + [f"  • {t['name']} ({t['count']})" for t in items]
            ),
        )
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="search_by_tags", annotations=_annotations("Search Clips by Tags"))
async def search_by_tags(params: SearchByTagsInput) -> CallToolResult:
    """Find clips that have specific tags/keywords.

    match='any' (OR, default) or 'all' (AND); limit 1-50, offset for paging.
    """
    try:
        data = await _get_client().search_by_tags(
            params.tags, params.match, params.limit, params.offset
        )
        tag_list = ", ".join(params.tags)
        limit = params.limit or DEFAULT_CLIP_LIMIT
        offset = params.offset or 0
        return _render_collection(
            data,
            params.response_format,
            f"No clips found tagged {tag_list}.",
            lambda clips: _format_clip_list(
                clips, f"{len(clips)} clip(s) tagged {tag_list}", limit, offset
            ),
        )
    except Exception as e:
        return handle_tool_error(e)


# ─── Bulk & Webhook Tools ────────────────────────────────────────────────────


@mcp.tool(name="bulk_update", annotations=_annotations("Bulk Update Clips", destructiveHint=True, **_CREATE))
async def bulk_update(params: BulkUpdateInput) -> CallToolResult:
    """Perform bulk operations on up to 100 clips at once.

    Actions: delete, move (change category; requires category), tag (add
    keywords; requires tags), favorite, archive (value defaults to true).
    """
    try:
        data = await _get_client().bulk_update(params.model_dump(by_alias=True))
        return _write_result(data, f"Bulk {params.action} applied to {len(params.ids)} clip(s).")
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="list_webhooks", annotations=_annotations("List Webhooks"))
async def list_webhooks(params: ListInput) -> CallToolResult:
    """List all webhook subscriptions with delivery statistics."""
    try:
        data = await _get_client().list_webhooks()
        return _render_collection(
            data,
            params.response_format,
            "No webhooks found.",
            lambda items: "\n".join(
                [f"**{len(items)} webhook(s):**\n"] + [_format_webhook(h) for h in items]
            ),
        )
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="create_webhook", annotations=_annotations("Create Webhook", **_CREATE))
async def create_webhook(params: CreateWebhookInput) -> CallToolResult:
    """Create a webhook subscription.

    The URL must be HTTPS and reachable. Returns a secret for verifying
    webhook signatures (HMAC-SHA256).
    """
    try:
        data = await _get_client().create_webhook(params.url, params.events, params.label)
        return _write_result(data, f"Webhook created for {params.url}.")
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(name="delete_webhook", annotations=_annotations("Delete Webhook", **_DELETE))
async def delete_webhook(params: DeleteWebhookInput) -> CallToolResult:
    """Delete a webhook subscription."""
    try:
        data = await _get_client().delete_webhook(params.id)
        return _write_result(data, f"Webhook {params.id} deleted.")
    except Exception as e:
        return handle_tool_error(e)


# ─── Entry Point ─────────────────────────────────────────────────────────────


def main() -> None:
    configure_logging()

    api_key = require_env(
        "LINKBRAIN_API_KEY",
        "Get your API key from: https://linkbrain.cloud/settings?tab=api",
    )
    base_url = os.environ.get("LINKBRAIN_API_URL") or DEFAULT_API_URL
    set_client(LinkbrainClient(Credential(token=api_key, base_url=base_url)))
    logger.info("Linkbrain MCP server starting against %s", base_url)
    mcp.run()


if __name__ == "__main__":
    main()
