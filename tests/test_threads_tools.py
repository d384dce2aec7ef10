from __future__ import annotations

import asyncio
import json

import pytest
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import ValidationError

import threads_mcp_server as th
from mcp_bridge_common import CHARACTER_LIMIT, TRUNCATION_NOTICE

BASE = "/v1.0"


def _text(result) -> str:
    assert len(result.content) == 1
    return result.content[0].text


POST = {
    "id": "t1",
    "media_type": "IMAGE",
    "text": "Shipping the new release today",
    "timestamp": "2025-01-15T10:30:00+0000",
    "permalink": "https://www.threads.net/@me/post/abc",
    "username": "me",
    "topic_tag": "python",
}


# ─── Publishing ──────────────────────────────────────────────────────────────


def test_create_post_publishes_and_reports_id(upstream, threads) -> None:
    upstream.add("POST", f"{BASE}/42/threads", json_body={"id": "c1"})
    upstream.add("POST", f"{BASE}/42/threads_publish", json_body={"id": "p1"})

    result = asyncio.run(th.threads_create_post(th.CreatePostInput(text="hi")))

    assert not result.isError
    assert _text(result) == 'Post published successfully!\n\nPost ID: p1\nText: "hi"'
    assert [r.url.path for r in upstream.requests] == [
        f"{BASE}/me",
        f"{BASE}/42/threads",
        f"{BASE}/42/threads_publish",
    ]
    assert upstream.sleeps == [th.POST_PUBLISH_DELAY]


def test_create_post_failure_is_error_result_without_retry(upstream, threads) -> None:
    upstream.add("POST", f"{BASE}/42/threads", json_body={"id": "c1"})
    upstream.add(
        "POST",
        f"{BASE}/42/threads_publish",
        status=400,
        json_body={"error": {"message": "Media not ready", "type": "OAuthException", "code": 100}},
    )

    result = asyncio.run(th.threads_create_post(th.CreatePostInput(text="hi")))

    assert result.isError is True
    assert _text(result) == "Error: Invalid parameter: Media not ready. Check your input values."
    assert len(upstream.calls("POST", f"{BASE}/42/threads")) == 1


def test_long_post_text_is_previewed(upstream, threads) -> None:
    upstream.add("POST", f"{BASE}/42/threads", json_body={"id": "c1"})
    upstream.add("POST", f"{BASE}/42/threads_publish", json_body={"id": "p1"})

    result = asyncio.run(th.threads_create_post(th.CreatePostInput(text="a" * 150)))

    assert f'Text: "{"a" * 100}..."' in _text(result)


def test_carousel_post_tool(upstream, threads) -> None:
    upstream.add("POST", f"{BASE}/42/threads", json_body={"id": "k1"})
    upstream.add("POST", f"{BASE}/42/threads", json_body={"id": "k2"})
    upstream.add("POST", f"{BASE}/42/threads", json_body={"id": "car"})
    upstream.add("POST", f"{BASE}/42/threads_publish", json_body={"id": "p1"})

    params = th.CreatePostInput(
        text="album",
        carousel_items=[
            {"image_url": "https://img.test/1.png"},
            {"image_url": "https://img.test/2.png"},
        ],
    )
    result = asyncio.run(th.threads_create_post(params))

    assert "Post ID: p1" in _text(result)
    assert len(upstream.calls("POST", f"{BASE}/42/threads")) == 3


def test_reply_tool(upstream, threads) -> None:
    upstream.add("POST", f"{BASE}/42/threads", json_body={"id": "c1"})
    upstream.add("POST", f"{BASE}/42/threads_publish", json_body={"id": "r1"})

    result = asyncio.run(th.threads_reply(th.ReplyInput(thread_id="t1", text="thanks")))

    assert _text(result).startswith("Reply posted successfully!\n\nReply ID: r1")
    assert "In reply to: t1" in _text(result)


def test_delete_post_tool(upstream, threads) -> None:
    upstream.add("DELETE", f"{BASE}/t1", json_body={"success": True})

    result = asyncio.run(th.threads_delete_post(th.DeletePostInput(thread_id="t1")))

    assert _text(result) == "Post t1 deleted successfully."


# ─── Content ─────────────────────────────────────────────────────────────────


def test_my_posts_markdown(upstream, threads) -> None:
    upstream.add("GET", f"{BASE}/42/threads", json_body={"data": [POST]})

    result = asyncio.run(th.threads_get_my_posts(th.GetMyPostsInput(limit=5)))
    text = _text(result)

    assert text.startswith("# My Threads Posts (1)")
    assert "**[t1]** @me · 2025-01-15 10:30:00 UTC" in text
    assert "Shipping the new release today" in text
    assert "Media: IMAGE" in text
    assert "Topic: python" in text
    assert "Link: https://www.threads.net/@me/post/abc" in text
    assert upstream.calls("GET", f"{BASE}/42/threads")[0].url.params["limit"] == "5"


def test_my_posts_json(upstream, threads) -> None:
    paging = {"cursors": {"after": "x"}}
    upstream.add("GET", f"{BASE}/42/threads", json_body={"data": [POST], "paging": paging})

    result = asyncio.run(th.threads_get_my_posts(th.GetMyPostsInput(response_format="json")))

    assert json.loads(_text(result)) == {"count": 1, "posts": [POST], "paging": paging}


def test_my_posts_empty(upstream, threads) -> None:
    upstream.add("GET", f"{BASE}/42/threads", json_body={"data": []})

    result = asyncio.run(th.threads_get_my_posts(th.GetMyPostsInput()))

    assert _text(result) == "No posts found."


def test_get_post_text_post_hides_media_line(upstream, threads) -> None:
    upstream.add("GET", f"{BASE}/t2", json_body={"id": "t2", "media_type": "TEXT_POST", "text": "plain"})

    result = asyncio.run(th.threads_get_post(th.ThreadIdInput(thread_id="t2")))

    assert "Media:" not in _text(result)
    assert "@me · N/A" in _text(result)


@pytest.mark.parametrize("fmt", ["markdown", "json"])
def test_search_without_results(upstream, threads, fmt) -> None:
    upstream.add("GET", f"{BASE}/keyword_search", json_body={"data": []})

    result = asyncio.run(th.threads_search(th.SearchPostsInput(query="zzz", response_format=fmt)))

    assert not result.isError
    assert _text(result) == 'No posts found for "zzz".'


def test_search_markdown_heading(upstream, threads) -> None:
    upstream.add("GET", f"{BASE}/keyword_search", json_body={"data": [POST, {**POST, "id": "t3"}]})

    result = asyncio.run(th.threads_search(th.SearchPostsInput(query="release")))

    assert _text(result).startswith('# Search Results: "release" (2)')


def test_large_listing_is_truncated(upstream, threads) -> None:
    posts = [{**POST, "id": f"t{i}", "text": "x" * 400} for i in range(100)]
    upstream.add("GET", f"{BASE}/42/threads", json_body={"data": posts})

    result = asyncio.run(th.threads_get_my_posts(th.GetMyPostsInput(limit=100)))
    text = _text(result)

    assert text.endswith(TRUNCATION_NOTICE)
    assert len(text) == CHARACTER_LIMIT + len(TRUNCATION_NOTICE)


# ─── Replies ─────────────────────────────────────────────────────────────────


def test_replies_mark_hidden_ones(upstream, threads) -> None:
    replies = [
        {"id": "r1", "text": "nice", "username": "ann", "hide_status": "NOT_HUSHED"},
        {"id": "r2", "text": "spam", "username": "bot", "hide_status": "HIDDEN"},
    ]
    upstream.add("GET", f"{BASE}/t1/replies", json_body={"data": replies})

    result = asyncio.run(th.threads_get_replies(th.GetRepliesInput(thread_id="t1")))
    text = _text(result)

    assert text.startswith("# Replies to t1 (2)")
    assert "> nice" in text
    assert "**[r2]** @bot · N/A [HIDDEN]" in text
    assert "**[r1]** @ann · N/A\n" in text


def test_conversation_empty(upstream, threads) -> None:
    upstream.add("GET", f"{BASE}/t1/conversation", json_body={"data": []})

    result = asyncio.run(th.threads_get_conversation(th.GetRepliesInput(thread_id="t1")))

    assert _text(result) == "No replies found for this thread."


@pytest.mark.parametrize("hide,word", [(True, "hidden"), (False, "unhidden")])
def test_hide_reply_tool(upstream, threads, hide, word) -> None:
    upstream.add("POST", f"{BASE}/r1/manage_reply", json_body={"success": True})

    result = asyncio.run(th.threads_hide_reply(th.HideReplyInput(reply_id="r1", hide=hide)))

    assert _text(result) == f"Reply r1 {word} successfully."


# ─── Insights & account ──────────────────────────────────────────────────────


def test_post_insights_markdown(upstream, threads) -> None:
    insights = [
        {"name": "views", "title": "Views", "values": [{"value": 1200}]},
        {"name": "likes", "title": "Likes", "total_value": {"value": 34}},
    ]
    upstream.add("GET", f"{BASE}/t1/insights", json_body={"data": insights})

    result = asyncio.run(th.threads_get_post_insights(th.ThreadIdInput(thread_id="t1")))
    text = _text(result)

    assert text.startswith("# Post Insights: t1")
    assert "- **Views**: 1200" in text
    assert "- **Likes**: 34" in text


def test_publishing_limit_percentages(upstream, threads) -> None:
    entry = {
        "quota_usage": 25,
        "config": {"quota_total": 250, "quota_duration": 86400},
        "reply_quota_usage": 3,
        "reply_config": {"quota_total": 1000, "quota_duration": 86400},
    }
    upstream.add("GET", f"{BASE}/42/threads_publishing_limit", json_body={"data": [entry]})

    result = asyncio.run(th.threads_get_publishing_limit(th.FormattedInput()))
    text = _text(result)

    assert "**Posts**: 25 / 250 (10% used)" in text
    assert "**Replies**: 3 / 1000 (0% used)" in text
    assert "Posts remaining: 225" in text
    assert "Replies remaining: 997" in text


def test_publishing_limit_defaults_when_upstream_is_silent(upstream, threads) -> None:
    upstream.add("GET", f"{BASE}/42/threads_publishing_limit", json_body={"data": []})

    result = asyncio.run(th.threads_get_publishing_limit(th.FormattedInput()))

    assert "**Posts**: 0 / 250 (0% used)" in _text(result)


def test_profile_markdown(upstream, threads) -> None:
    upstream.add(
        "GET",
        f"{BASE}/me",
        json_body={"id": "42", "username": "me", "name": "Me", "is_verified": True, "threads_biography": "hi"},
        replace=True,
    )

    result = asyncio.run(th.threads_get_profile(th.FormattedInput()))
    text = _text(result)

    assert text.startswith("# @me (verified)")
    assert "**Bio**: hi" in text
    assert "**ID**: 42" in text


def test_unconfigured_client_is_reported() -> None:
    th.set_client(None)

    result = asyncio.run(th.threads_get_profile(th.FormattedInput()))

    assert result.isError is True
    assert "THREADS_ACCESS_TOKEN" in _text(result)


# ─── Input validation ────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "model,raw",
    [
        (th.CreatePostInput, {"text": ""}),
        (th.CreatePostInput, {"text": "x" * 501}),
        (th.CreatePostInput, {"text": "hi", "image_url": "https://a.test/1.png", "video_url": "https://a.test/1.mp4"}),
        (th.CreatePostInput, {"text": "hi", "image_url": "ftp://a.test/1.png"}),
        (th.CreatePostInput, {"text": "hi", "carousel_items": [{"image_url": "https://a.test/1.png"}]}),
        (th.CreatePostInput, {"text": "hi", "carousel_items": [{}, {"image_url": "https://a.test/1.png"}]}),
        (th.CreatePostInput, {"text": "hi", "reply_control": "nobody"}),
        (th.ReplyInput, {"thread_id": "t1", "text": "x" * 501}),
        (th.GetMyPostsInput, {"limit": 0}),
        (th.GetMyPostsInput, {"limit": 101}),
        (th.SearchPostsInput, {"query": "x" * 201}),
        (th.SearchPostsInput, {"query": "x", "media_type": "AUDIO"}),
        (th.HideReplyInput, {"reply_id": "r1"}),
        (th.ThreadIdInput, {"thread_id": "t1", "extra": True}),
    ],
)
def test_invalid_input_is_rejected(model, raw) -> None:
    with pytest.raises(ValidationError):
        model.model_validate(raw)


def test_post_text_at_limit_is_accepted() -> None:
    assert len(th.CreatePostInput(text="x" * 500).text) == 500


def test_catalog_declares_all_tools_with_hints() -> None:
    tools = {t.name: t for t in asyncio.run(th.mcp.list_tools())}

    assert len(tools) == 13
    assert all(name.startswith("threads_") for name in tools)
    assert tools["threads_delete_post"].annotations.destructiveHint is True
    assert tools["threads_create_post"].annotations.idempotentHint is False
    assert tools["threads_search"].annotations.readOnlyHint is True
    assert tools["threads_hide_reply"].annotations.readOnlyHint is False


@pytest.mark.parametrize("fmt", ["markdown", "json"])
def test_post_insights_without_data(upstream, threads, fmt) -> None:
    upstream.add("GET", f"{BASE}/t1/insights", json_body={"data": []})

    result = asyncio.run(
        th.threads_get_post_insights(th.ThreadIdInput(thread_id="t1", response_format=fmt))
    )

    assert not result.isError
    assert _text(result) == "No insights available for this post."


@pytest.mark.parametrize("fmt", ["markdown", "json"])
def test_account_insights_without_data(upstream, threads, fmt) -> None:
    upstream.add("GET", f"{BASE}/42/threads_insights", json_body={"data": []})

    result = asyncio.run(
        th.threads_get_account_insights(th.AccountInsightsInput(response_format=fmt))
    )

    assert _text(result) == "No insights available for this account."


def test_profile_without_id_is_classified(upstream, threads) -> None:
    upstream.add("GET", f"{BASE}/me", json_body={"username": "me"}, replace=True)

    result = asyncio.run(th.threads_get_profile(th.FormattedInput()))

    assert result.isError is True
    assert _text(result) == "Error: Threads did not return an account id for this token."


def test_host_rejects_invalid_arguments_before_any_request(upstream, threads) -> None:
    with pytest.raises(ToolError):
        asyncio.run(th.mcp.call_tool("threads_create_post", {"params": {"text": "x" * 501}}))

    assert upstream.requests == []
