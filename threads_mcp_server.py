#!/usr/bin/env python3
"""
Threads MCP Server
Connects Claude Desktop to Meta's Threads Graph API: publishing, replies,
content retrieval, keyword search and insights.

Setup:
  1. pip install -e .
  2. Create a Meta Developer App with the Threads API product and request the
     threads_basic, threads_content_publish, threads_manage_insights,
     threads_read_replies and threads_manage_replies scopes
  3. Generate a long-lived token and set THREADS_ACCESS_TOKEN
  4. Add `threads-mcp` to claude_desktop_config.json
"""

import asyncio
import logging
import os
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional
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

from mcp_bridge_common import (
    REQUEST_TIMEOUT,
    AuthError,
    BridgeError,
    ContainerNotReadyError,
    Credential,
    InvalidParameterError,
    RateLimitError,
    ResponseFormat,
    UnknownError,
    UpstreamAPIError,
    build_query,
    classify_transport_error,
    configure_logging,
    format_timestamp,
    handle_tool_error,
    require_env,
    text_result,
    to_json,
)

# ─── Configuration ───────────────────────────────────────────────────────────

DEFAULT_API_BASE = "https://graph.threads.net/v1.0"
DEFAULT_LIMIT = 25

THREADS_POST_CHAR_LIMIT = 500
THREADS_DAILY_POST_LIMIT = 250
THREADS_DAILY_REPLY_LIMIT = 1000

# Fixed wait between container creation and publish.
POST_PUBLISH_DELAY = 1.5
REPLY_PUBLISH_DELAY = 1.0

# Used instead of the fixed wait when container polling is enabled.
CONTAINER_STATUS_MAX_POLLS = 10
CONTAINER_STATUS_POLL_INTERVAL = 2.0

PROFILE_FIELDS = "id,username,name,threads_profile_picture_url,threads_biography,is_verified"
POST_FIELDS = "id,media_type,text,timestamp,permalink,username,is_quote_post,shortcode,topic_tag"
SEARCH_FIELDS = "id,media_type,text,timestamp,permalink,username,topic_tag"
REPLY_FIELDS = "id,text,username,timestamp,media_type,permalink,hide_status"
POST_METRICS = "views,likes,replies,reposts,quotes"
ACCOUNT_METRICS = "views,likes,replies,reposts,quotes,followers_count"

logger = logging.getLogger("threads_mcp")

mcp = FastMCP("threads_mcp")

# ─── Error Classification ────────────────────────────────────────────────────


class ThreadsErrorDetail(BaseModel):
    message: str
    type: str = "UnknownError"
    code: int
    error_subcode: Optional[int] = None
    fbtrace_id: Optional[str] = None


class ThreadsErrorResponse(BaseModel):
    """Graph API failure body: {"error": {message, type, code, ...}}."""

    error: ThreadsErrorDetail


def classify_threads_error(status: int, body: Any) -> BridgeError:
    """Map a failed response to a classified error; the body wins over the status."""
    try:
        detail = ThreadsErrorResponse.model_validate(body).error
    except ValidationError:
        detail = None

    if detail is not None:
        logger.warning(
            "Threads API error code=%s subcode=%s fbtrace_id=%s",
            detail.code,
            detail.error_subcode,
            detail.fbtrace_id,
        )
        message = detail.message
        if detail.code == 190:
            return AuthError(
                f"Authentication error: {message}. Your access token may have expired. "
                "Generate a new one.",
                status_code=status,
            )
        if detail.code == 4:
            return RateLimitError(
                f"Rate limit exceeded: {message}. Wait a few minutes before retrying.",
                status_code=status,
            )
        if detail.code == 100:
            return InvalidParameterError(
                f"Invalid parameter: {message}. Check your input values.",
                status_code=status,
            )
        return UpstreamAPIError(
            f"Threads API error ({detail.type}, code {detail.code}): {message}",
            status_code=status,
        )

    if status == 401:
        return AuthError(
            "Authentication failed (HTTP 401). Check THREADS_ACCESS_TOKEN or generate a new one.",
            status_code=status,
        )
    if status == 429:
        return RateLimitError(
            "Rate limit exceeded (HTTP 429). Wait a few minutes before retrying.",
            status_code=status,
        )
    return UpstreamAPIError(f"Threads API returned HTTP {status}.", status_code=status)


# ─── HTTP Client ─────────────────────────────────────────────────────────────


class ThreadsClient:
    """HTTP client for the Threads Graph API; the token travels as access_token."""

    def __init__(
        self,
        credential: Credential,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = REQUEST_TIMEOUT,
        wait_for_container: bool = False,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._credential = credential
        self._transport = transport
        self._timeout = timeout
        self._wait_for_container = wait_for_container
        self._sleep = sleep
        self._user_id: Optional[str] = None

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self._credential.base_url}/{endpoint}"
        query = {"access_token": self._credential.token, **build_query(params)}
        logger.debug("%s %s", method, endpoint)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method,
                    url,
                    params=query,
                    headers={
                        "Content-Type": "application/json",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            raise classify_transport_error(e) from e

        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                if response.is_success:
                    raise UnknownError(
                        f"Threads returned a non-JSON response (HTTP {response.status_code})."
                    )
        if response.is_success:
            return body if body is not None else {}
        raise classify_threads_error(response.status_code, body)

    # ── User / Profile ──

    async def get_me(self, fields: str = PROFILE_FIELDS) -> Dict[str, Any]:
        me = await self.request("me", params={"fields": fields})
        if not me.get("id"):
            raise UnknownError("Threads did not return an account id for this token.")
        self._user_id = me["id"]
        return me

    async def get_user_id(self) -> str:
        """Return the acting account id, looking it up once per client."""
        if self._user_id:
            return self._user_id
        me = await self.get_me("id")
        return me["id"]

    # ── Publishing ──

    async def create_media_container(
        self,
        text: Optional[str] = None,
        image_url: Optional[str] = None,
        video_url: Optional[str] = None,
        media_type: Optional[str] = None,
        is_carousel_item: bool = False,
        reply_to_id: Optional[str] = None,
        children: Optional[List[str]] = None,
        reply_control: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Step 1: stage content in a container and return {"id": ...}."""
        user_id = await self.get_user_id()
        if media_type == "CAROUSEL":
            resolved = "CAROUSEL"
        elif image_url:
            resolved = "IMAGE"
        elif video_url:
            resolved = "VIDEO"
        else:
            resolved = "TEXT"

        params = {
            "media_type": resolved,
            "text": text,
            "image_url": image_url,
            "video_url": video_url,
            "reply_to_id": reply_to_id,
            "reply_control": reply_control,
            "children": children if resolved == "CAROUSEL" else None,
            "is_carousel_item": True if is_carousel_item else None,
        }
        return await self.request(f"{user_id}/threads", "POST", params)

    async def publish_container(self, creation_id: str) -> Dict[str, Any]:
        """Step 2: publish a staged container."""
        user_id = await self.get_user_id()
        return await self.request(
            f"{user_id}/threads_publish", "POST", {"creation_id": creation_id}
        )

    async def get_container_status(self, container_id: str) -> Dict[str, Any]:
        return await self.request(container_id, params={"fields": "id,status,error_message"})

    async def wait_for_container(self, container_id: str) -> None:
        """Poll a container until it is publishable, within a bounded budget."""
        for attempt in range(1, CONTAINER_STATUS_MAX_POLLS + 1):
            status = await self.get_container_status(container_id)
            state = status.get("status")
            logger.debug("Container %s status %s (check %d)", container_id, state, attempt)
            if state in ("FINISHED", "PUBLISHED"):
                return
            if state in ("ERROR", "EXPIRED"):
                raise ContainerNotReadyError(
                    f"Media container {container_id} failed processing ({state}): "
                    f"{status.get('error_message') or 'no details from Threads'}"
                )
            if attempt < CONTAINER_STATUS_MAX_POLLS:
                await self._sleep(CONTAINER_STATUS_POLL_INTERVAL)
        raise ContainerNotReadyError(
            f"Media container {container_id} was not ready after "
            f"{CONTAINER_STATUS_MAX_POLLS} status checks. Nothing was published."
        )

    async def _settle(self, container_id: str, delay: float) -> None:
        if self._wait_for_container:
            await self.wait_for_container(container_id)
        else:
            await self._sleep(delay)

    async def publish_post(
        self,
        text: str,
        image_url: Optional[str] = None,
        video_url: Optional[str] = None,
        reply_control: Optional[str] = None,
        carousel: Optional[List[Dict[str, Optional[str]]]] = None,
    ) -> Dict[str, Any]:
        """Create a container for a new post, wait, then publish it.

        A failed publish leaves the container behind; it is not recreated.
        """
        if carousel:
            children = []
            for item in carousel:
                child = await self.create_media_container(
                    image_url=item.get("image_url"),
                    video_url=item.get("video_url"),
                    is_carousel_item=True,
                )
                if self._wait_for_container:
                    await self.wait_for_container(child["id"])
                children.append(child["id"])
            container = await self.create_media_container(
                text=text,
                media_type="CAROUSEL",
                children=children,
                reply_control=reply_control,
            )
        else:
            container = await self.create_media_container(
                text=text,
                image_url=image_url,
                video_url=video_url,
                reply_control=reply_control,
            )
        await self._settle(container["id"], POST_PUBLISH_DELAY)
        return await self.publish_container(container["id"])

    async def reply_to_thread(self, thread_id: str, text: str) -> Dict[str, Any]:
        container = await self.create_media_container(text=text, reply_to_id=thread_id)
        await self._settle(container["id"], REPLY_PUBLISH_DELAY)
        return await self.publish_container(container["id"])

    # ── Content Retrieval ──

    async def get_user_threads(
        self,
        limit: Optional[int] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
    ) -> Dict[str, Any]:
        user_id = await self.get_user_id()
        params = {"fields": POST_FIELDS, "limit": limit, "since": since, "until": until}
        return await self.request(f"{user_id}/threads", params=params)

    async def get_thread(self, thread_id: str) -> Dict[str, Any]:
        return await self.request(thread_id, params={"fields": POST_FIELDS})

    async def delete_thread(self, thread_id: str) -> Dict[str, Any]:
        return await self.request(thread_id, "DELETE")

    async def search_posts(
        self,
        query: str,
        media_type: Optional[str] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
    ) -> Dict[str, Any]:
        params = {
            "q": query,
            "fields": SEARCH_FIELDS,
            "media_type": media_type,
            "since": since,
            "until": until,
        }
        return await self.request("keyword_search", params=params)

    # ── Replies ──

    async def get_replies(self, thread_id: str, reverse: bool = False) -> Dict[str, Any]:
        params = {"fields": REPLY_FIELDS, "reverse": True if reverse else None}
        return await self.request(f"{thread_id}/replies", params=params)

    async def get_conversation(self, thread_id: str, reverse: bool = False) -> Dict[str, Any]:
        params = {"fields": REPLY_FIELDS, "reverse": True if reverse else None}
        return await self.request(f"{thread_id}/conversation", params=params)

    async def hide_reply(self, reply_id: str, hide: bool) -> Dict[str, Any]:
        return await self.request(f"{reply_id}/manage_reply", "POST", {"hide": hide})

    # ── Insights ──

    async def get_media_insights(self, thread_id: str) -> Dict[str, Any]:
        return await self.request(f"{thread_id}/insights", params={"metric": POST_METRICS})

    async def get_user_insights(
        self, since: Optional[int] = None, until: Optional[int] = None
    ) -> Dict[str, Any]:
        user_id = await self.get_user_id()
        params = {"metric": ACCOUNT_METRICS, "since": since, "until": until}
        return await self.request(f"{user_id}/threads_insights", params=params)

    async def get_publishing_limit(self) -> Dict[str, Any]:
        user_id = await self.get_user_id()
        response = await self.request(
            f"{user_id}/threads_publishing_limit",
            params={"fields": "quota_usage,config,reply_quota_usage,reply_config"},
        )
        entries = response.get("data") or []
        return entries[0] if entries else {}


_client: Optional[ThreadsClient] = None


def set_client(client: Optional[ThreadsClient]) -> None:
    global _client
    _client = client


def _get_client() -> ThreadsClient:
    if _client is None:
        raise AuthError("THREADS_ACCESS_TOKEN is not configured.")
    return _client


# ─── Formatting Helpers ──────────────────────────────────────────────────────


def _preview(text: str, limit: int = 100) -> str:
    return f"{text[:limit]}{'...' if len(text) > limit else ''}"


def _format_post(post: Dict) -> str:
    """Format a post for display."""
    lines = [
        f"**[{post.get('id', '?')}]** @{post.get('username') or 'me'} · "
        f"{format_timestamp(post.get('timestamp'))}"
    ]
    if post.get("text"):
        lines.append(post["text"])
    media_type = post.get("media_type")
    if media_type and media_type != "TEXT_POST":
        lines.append(f"Media: {media_type}")
    if post.get("topic_tag"):
        lines.append(f"Topic: {post['topic_tag']}")
    if post.get("permalink"):
        lines.append(f"Link: {post['permalink']}")
    lines.append("---")
    return "\n".join(lines)


def _format_reply(reply: Dict) -> str:
    """Format a reply for display."""
    hidden = " [HIDDEN]" if reply.get("hide_status") in ("HIDDEN", "COVERED") else ""
    lines = [
        f"**[{reply.get('id', '?')}]** @{reply.get('username') or 'unknown'} · "
        f"{format_timestamp(reply.get('timestamp'))}{hidden}"
    ]
    if reply.get("text"):
        lines.append(f"> {reply['text']}")
    if reply.get("permalink"):
        lines.append(f"Link: {reply['permalink']}")
    lines.append("---")
    return "\n".join(lines)


def _format_metrics(heading: str, insights: List[Dict]) -> str:
    lines = [f"# {heading}\n"]
    for metric in insights:
        values = metric.get("values") or []
        value = values[0].get("value", "N/A") if values else "N/A"
        if value == "N/A" and metric.get("total_value"):
            value = metric["total_value"].get("value", "N/A")
        lines.append(f"- **{metric.get('title') or metric.get('name', '?')}**: {value}")
    return "\n".join(lines)


def _percent(used: int, total: int) -> int:
    return int(used * 100 / total + 0.5) if total else 0


# ─── Input Models ────────────────────────────────────────────────────────────


def _check_url(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    parsed = urlparse(v)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return v


class ThreadsInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class FormattedInput(ThreadsInput):
    response_format: ResponseFormat = Field(
        default=ResponseFormat.MARKDOWN,
        description="Output format: 'markdown' for human-readable or 'json' for structured data",
    )


class CarouselItem(ThreadsInput):
    """One image or video in a carousel post."""

    image_url: Optional[str] = Field(default=None, description="Image URL (JPEG or PNG)")
    video_url: Optional[str] = Field(default=None, description="Video URL (max 5 min)")

    @field_validator("image_url", "video_url")
    @classmethod
    def validate_urls(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)

    @model_validator(mode="after")
    def check_one_media(self) -> "CarouselItem":
        if bool(self.image_url) == bool(self.video_url):
            raise ValueError("each carousel item needs exactly one of image_url or video_url")
        return self


class CreatePostInput(ThreadsInput):
    """Input for creating and publishing a post."""

    text: str = Field(
        ...,
        description=f"The text content of the post (max {THREADS_POST_CHAR_LIMIT} chars)",
        min_length=1,
        max_length=THREADS_POST_CHAR_LIMIT,
    )
    image_url: Optional[str] = Field(default=None, description="URL of an image to attach (JPEG or PNG)")
    video_url: Optional[str] = Field(default=None, description="URL of a video to attach (max 5 min)")
    carousel_items: Optional[List[CarouselItem]] = Field(
        default=None,
        description="2-20 images/videos to publish as a carousel instead of a single attachment",
        min_length=2,
        max_length=20,
    )
    reply_control: Optional[Literal["everyone", "accounts_you_follow", "mentioned_only"]] = Field(
        default=None, description="Who can reply to this post"
    )

    @field_validator("image_url", "video_url")
    @classmethod
    def validate_urls(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)

    @model_validator(mode="after")
    def check_single_attachment(self) -> "CreatePostInput":
        attached = [x for x in (self.image_url, self.video_url, self.carousel_items) if x]
        if len(attached) > 1:
            raise ValueError("use only one of image_url, video_url or carousel_items")
        return self


class ReplyInput(ThreadsInput):
    thread_id: str = Field(..., description="The ID of the thread to reply to", min_length=1)
    text: str = Field(
        ...,
        description=f"The reply text (max {THREADS_POST_CHAR_LIMIT} chars)",
        min_length=1,
        max_length=THREADS_POST_CHAR_LIMIT,
    )


class GetMyPostsInput(FormattedInput):
    limit: int = Field(default=DEFAULT_LIMIT, description="Number of threads to return (1-100, default 25)", ge=1, le=100)
    since: Optional[str] = Field(default=None, description="ISO 8601 date - only return threads after this date")
    until: Optional[str] = Field(default=None, description="ISO 8601 date - only return threads before this date")


class ThreadIdInput(FormattedInput):
    thread_id: str = Field(..., description="The ID of the thread", min_length=1)


class DeletePostInput(ThreadsInput):
    thread_id: str = Field(..., description="The ID of the thread to delete", min_length=1)


class SearchPostsInput(FormattedInput):
    query: str = Field(
        ..., description="Keyword to search for in public Threads posts", min_length=1, max_length=200
    )
    media_type: Optional[Literal["TEXT_POST", "IMAGE", "VIDEO"]] = Field(
        default=None, description="Filter by media type"
    )
    since: Optional[str] = Field(default=None, description="ISO 8601 date - only return posts after this date")
    until: Optional[str] = Field(default=None, description="ISO 8601 date - only return posts before this date")


class GetRepliesInput(FormattedInput):
    thread_id: str = Field(..., description="The ID of the thread", min_length=1)
    reverse: bool = Field(default=False, description="Return replies in reverse chronological order")


class HideReplyInput(ThreadsInput):
    reply_id: str = Field(..., description="The ID of the reply to hide/unhide", min_length=1)
    hide: bool = Field(..., description="true to hide, false to unhide")


class AccountInsightsInput(FormattedInput):
    since: Optional[int] = Field(default=None, description="Unix timestamp - start of the time range", ge=0)
    until: Optional[int] = Field(default=None, description="Unix timestamp - end of the time range", ge=0)


# ─── Publishing Tools ────────────────────────────────────────────────────────


@mcp.tool(
    name="threads_create_post",
    annotations={
        "title": "Create Threads Post",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def threads_create_post(params: CreatePostInput) -> CallToolResult:
    """Create and publish a new post on Threads.

    Supports text-only, image, video or carousel (2-20 items) posts. Text is
    limited to 500 characters. Posts go through a two-step process: container
    creation, a short wait for media processing, then publish. If publishing
    fails the staged container is not retried.

    Args:
        params: text (required), optional image_url / video_url / carousel_items
            (at most one) and reply_control ("everyone", "accounts_you_follow",
            "mentioned_only").

    Returns:
        CallToolResult: Published post ID.

    Rate Limit: Max 250 posts per 24 hours.
    """
    try:
        carousel = (
            [item.model_dump() for item in params.carousel_items]
            if params.carousel_items
            else None
        )
        published = await _get_client().publish_post(
            params.text,
            image_url=params.image_url,
            video_url=params.video_url,
            reply_control=params.reply_control,
            carousel=carousel,
        )
        return text_result(
            f"Post published successfully!\n\nPost ID: {published.get('id', '?')}\n"
            f"Text: \"{_preview(params.text)}\""
        )
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(
    name="threads_reply",
    annotations={
        "title": "Reply to Thread",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def threads_reply(params: ReplyInput) -> CallToolResult:
    """Reply to an existing Threads post.

    Args:
        params: thread_id to reply to and reply text (max 500 chars).

    Returns:
        CallToolResult: Published reply ID.

    Rate Limit: Max 1000 replies per 24 hours.
    """
    try:
        result = await _get_client().reply_to_thread(params.thread_id, params.text)
        return text_result(
            f"Reply posted successfully!\n\nReply ID: {result.get('id', '?')}\n"
            f"In reply to: {params.thread_id}\nText: \"{_preview(params.text)}\""
        )
    except Exception as e:
        return handle_tool_error(e)


# ─── Content Tools ───────────────────────────────────────────────────────────


@mcp.tool(
    name="threads_get_my_posts",
    annotations={
        "title": "Get My Threads Posts",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def threads_get_my_posts(params: GetMyPostsInput) -> CallToolResult:
    """Retrieve your recent Threads posts.

    Args:
        params: limit (1-100, default 25), optional since/until ISO 8601 dates,
            response_format ("markdown" default, or "json").

    Returns:
        CallToolResult: Posts with text, media type, timestamp, and permalink.
    """
    try:
        result = await _get_client().get_user_threads(params.limit, params.since, params.until)
        posts = result.get("data") or []
        if not posts:
            return text_result("No posts found.")
        if params.response_format == ResponseFormat.JSON:
            return text_result(to_json({"count": len(posts), "posts": posts, "paging": result.get("paging")}))
        body = "\n".join(_format_post(p) for p in posts)
        return text_result(f"# My Threads Posts ({len(posts)})\n\n{body}")
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(
    name="threads_get_post",
    annotations={
        "title": "Get Thread Post",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def threads_get_post(params: ThreadIdInput) -> CallToolResult:
    """Get details of a specific Threads post by ID."""
    try:
        post = await _get_client().get_thread(params.thread_id)
        if params.response_format == ResponseFormat.JSON:
            return text_result(to_json(post))
        return text_result(_format_post(post))
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(
    name="threads_delete_post",
    annotations={
        "title": "Delete Thread Post",
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def threads_delete_post(params: DeletePostInput) -> CallToolResult:
    """Delete one of your Threads posts. This action is irreversible."""
    try:
        await _get_client().delete_thread(params.thread_id)
        return text_result(f"Post {params.thread_id} deleted successfully.")
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(
    name="threads_search",
    annotations={
        "title": "Search Threads Posts",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def threads_search(params: SearchPostsInput) -> CallToolResult:
    """Search public Threads posts by keyword.

    Args:
        params: query (max 200 chars), optional media_type ("TEXT_POST",
            "IMAGE", "VIDEO"), since/until ISO 8601 dates, response_format.

    Returns:
        CallToolResult: Matching public posts.
    """
    try:
        result = await _get_client().search_posts(
            params.query, params.media_type, params.since, params.until
        )
        posts = result.get("data") or []
        if not posts:
            return text_result(f'No posts found for "{params.query}".')
        if params.response_format == ResponseFormat.JSON:
            return text_result(to_json({"query": params.query, "count": len(posts), "posts": posts}))
        body = "\n".join(_format_post(p) for p in posts)
        return text_result(f'# Search Results: "{params.query}" ({len(posts)})\n\n{body}')
    except Exception as e:
        return handle_tool_error(e)


# ─── Reply Tools ─────────────────────────────────────────────────────────────


async def _render_replies(
    fetch: Callable[[str, bool], Awaitable[Dict[str, Any]]],
    params: GetRepliesInput,
    heading: str,
) -> CallToolResult:
    result = await fetch(params.thread_id, params.reverse)
    replies = result.get("data") or []
    if not replies:
        return text_result("No replies found for this thread.")
    if params.response_format == ResponseFormat.JSON:
        return text_result(
            to_json({"thread_id": params.thread_id, "count": len(replies), "replies": replies})
        )
    body = "\n".join(_format_reply(r) for r in replies)
    return text_result(f"# {heading} {params.thread_id} ({len(replies)})\n\n{body}")


@mcp.tool(
    name="threads_get_replies",
    annotations={
        "title": "Get Thread Replies",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def threads_get_replies(params: GetRepliesInput) -> CallToolResult:
    """Get direct replies to a specific Threads post.

    Returns replies with text, username, timestamp, and hide status. Set
    reverse=true for reverse chronological order.
    """
    try:
        return await _render_replies(_get_client().get_replies, params, "Replies to")
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(
    name="threads_get_conversation",
    annotations={
        "title": "Get Thread Conversation",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def threads_get_conversation(params: GetRepliesInput) -> CallToolResult:
    """Get the full conversation under a Threads post.

    Unlike threads_get_replies this includes nested replies at every depth.
    """
    try:
        return await _render_replies(_get_client().get_conversation, params, "Conversation for")
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(
    name="threads_hide_reply",
    annotations={
        "title": "Hide/Unhide Reply",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def threads_hide_reply(params: HideReplyInput) -> CallToolResult:
    """Hide or unhide a reply on your Threads post."""
    try:
        await _get_client().hide_reply(params.reply_id, params.hide)
        action = "hidden" if params.hide else "unhidden"
        return text_result(f"Reply {params.reply_id} {action} successfully.")
    except Exception as e:
        return handle_tool_error(e)


# ─── Insight Tools ───────────────────────────────────────────────────────────


@mcp.tool(
    name="threads_get_post_insights",
    annotations={
        "title": "Get Post Insights",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def threads_get_post_insights(params: ThreadIdInput) -> CallToolResult:
    """Get engagement metrics for a specific Threads post.

    Metrics: views, likes, replies, reposts, and quotes.
    """
    try:
        result = await _get_client().get_media_insights(params.thread_id)
        insights = result.get("data") or []
        if not insights:
            return text_result("No insights available for this post.")
        if params.response_format == ResponseFormat.JSON:
            return text_result(to_json({"thread_id": params.thread_id, "insights": insights}))
        return text_result(_format_metrics(f"Post Insights: {params.thread_id}", insights))
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(
    name="threads_get_account_insights",
    annotations={
        "title": "Get Account Insights",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def threads_get_account_insights(params: AccountInsightsInput) -> CallToolResult:
    """Get account-level analytics for your Threads profile.

    Optional since/until are Unix timestamps. Metrics include views, likes,
    replies, reposts, quotes and followers_count.
    """
    try:
        result = await _get_client().get_user_insights(params.since, params.until)
        insights = result.get("data") or []
        if not insights:
            return text_result("No insights available for this account.")
        if params.response_format == ResponseFormat.JSON:
            return text_result(to_json({"insights": insights}))
        return text_result(_format_metrics("Account Insights", insights))
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(
    name="threads_get_publishing_limit",
    annotations={
        "title": "Get Publishing Limit",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def threads_get_publishing_limit(params: FormattedInput) -> CallToolResult:
    """Check your current Threads publishing quota usage.

    Returns current post/reply usage vs. limits (250 posts, 1000 replies per 24h).
    """
    try:
        limit = await _get_client().get_publishing_limit()
        if params.response_format == ResponseFormat.JSON:
            return text_result(to_json(limit))

        post_usage = limit.get("quota_usage") or 0
        post_total = (limit.get("config") or {}).get("quota_total") or THREADS_DAILY_POST_LIMIT
        reply_usage = limit.get("reply_quota_usage") or 0
        reply_total = (limit.get("reply_config") or {}).get("quota_total") or THREADS_DAILY_REPLY_LIMIT

        lines = [
            "# Publishing Limit Status\n",
            f"**Posts**: {post_usage} / {post_total} ({_percent(post_usage, post_total)}% used)",
            f"**Replies**: {reply_usage} / {reply_total} ({_percent(reply_usage, reply_total)}% used)",
            "",
            f"Posts remaining: {post_total - post_usage}",
            f"Replies remaining: {reply_total - reply_usage}",
        ]
        return text_result("\n".join(lines))
    except Exception as e:
        return handle_tool_error(e)


@mcp.tool(
    name="threads_get_profile",
    annotations={
        "title": "Get My Threads Profile",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def threads_get_profile(params: FormattedInput) -> CallToolResult:
    """Get your Threads profile: username, name, bio, picture, verification status."""
    try:
        profile = await _get_client().get_me()
        if params.response_format == ResponseFormat.JSON:
            return text_result(to_json(profile))

        verified = " (verified)" if profile.get("is_verified") else ""
        lines = [f"# @{profile.get('username', '?')}{verified}\n"]
        if profile.get("name"):
            lines.append(f"**Name**: {profile['name']}")
        if profile.get("threads_biography"):
            lines.append(f"**Bio**: {profile['threads_biography']}")
        if profile.get("threads_profile_picture_url"):
            lines.append(f"**Picture**: {profile['threads_profile_picture_url']}")
        lines.append(f"**ID**: {profile.get('id', '?')}")
        return text_result("\n".join(lines))
    except Exception as e:
        return handle_tool_error(e)


# ─── Entry Point ─────────────────────────────────────────────────────────────

TOKEN_HELP = """To get an access token:
1. Create a Meta Developer App at https://developers.facebook.com
2. Add the 'Threads API' product
3. Request scopes: threads_basic, threads_content_publish, threads_manage_insights,
   threads_read_replies, threads_manage_replies
4. Complete the OAuth flow and generate a long-lived access token

Then run: THREADS_ACCESS_TOKEN=your_token threads-mcp"""


def main() -> None:
    configure_logging()
    token = require_env("THREADS_ACCESS_TOKEN", TOKEN_HELP)
    base_url = os.environ.get("THREADS_API_BASE_URL") or DEFAULT_API_BASE
    wait = os.environ.get("THREADS_WAIT_FOR_CONTAINER", "").lower() in ("1", "true", "yes")
    set_client(
        ThreadsClient(Credential(token=token, base_url=base_url), wait_for_container=wait)
    )
    logger.info("Threads MCP server starting (container polling: %s)", wait)
    mcp.run()


if __name__ == "__main__":
    main()
