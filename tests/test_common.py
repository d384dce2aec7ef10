from __future__ import annotations

import json

import httpx
import pydantic
import pytest

import linkbrain_mcp_server
import threads_mcp_server
from mcp_bridge_common import (
    CHARACTER_LIMIT,
    TRUNCATION_NOTICE,
    AuthError,
    Credential,
    NetworkError,
    RequestTimeoutError,
    ResponseFormat,
    build_query,
    classify_transport_error,
    compact,
    error_result,
    format_timestamp,
    handle_tool_error,
    require_env,
    text_result,
    to_json,
    truncate_text,
)


@pytest.mark.parametrize("field", ["category", "platform", "search", "sort"])
@pytest.mark.parametrize("empty", [None, ""])
def test_build_query_never_emits_absent_or_empty_values(field: str, empty) -> None:
    query = build_query({"limit": 5, field: empty})

    assert field not in query
    assert "undefined" not in query.values()
    assert query == {"limit": "5"}


def test_build_query_renders_scalars_lists_and_enums() -> None:
    query = build_query(
        {
            "isFavorite": False,
            "content": True,
            "tags": ["ai", "ml"],
            "children": [],
            "format": ResponseFormat.JSON,
            "offset": 0,
        }
    )

    assert query == {
        "isFavorite": "false",
        "content": "true",
        "tags": "ai,ml",
        "format": "json",
        "offset": "0",
    }


def test_compact_drops_none_but_keeps_falsy_values() -> None:
    assert compact({"a": None, "b": False, "c": 0, "d": "x"}) == {"b": False, "c": 0, "d": "x"}


def test_truncate_text_caps_length_and_appends_notice() -> None:
    text = "x" * 30000

    truncated = truncate_text(text)

    assert truncated == "x" * CHARACTER_LIMIT + TRUNCATION_NOTICE
    assert len(truncated) == CHARACTER_LIMIT + len(TRUNCATION_NOTICE)
    assert len(truncated) < len(text)
    assert "limit" in TRUNCATION_NOTICE and "date range" in TRUNCATION_NOTICE


def test_truncate_text_leaves_short_text_alone() -> None:
    text = "y" * CHARACTER_LIMIT
    assert truncate_text(text) == text


@pytest.mark.parametrize(
    "record",
    [
        {"id": "1", "url": "https://x", "keywords": ["ai", "ml"]},
        {"id": "2", "title": "한국어 제목", "nested": {"n": 1.5, "ok": True, "none": None}},
        [{"name": "ai", "count": 2}],
    ],
)
def test_json_rendering_is_faithful(record) -> None:
    rendered = to_json(record)
    assert to_json(json.loads(rendered)) == rendered


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2025-01-15T10:30:00+0000", "2025-01-15 10:30:00 UTC"),
        ("2025-01-15T10:30:00Z", "2025-01-15 10:30:00 UTC"),
        ("2025-01-15T19:30:00+09:00", "2025-01-15 10:30:00 UTC"),
        (0, "1970-01-01 00:00:00 UTC"),
        (None, "N/A"),
        ("", "N/A"),
        ("yesterday", "yesterday"),
    ],
)
def test_format_timestamp(value, expected: str) -> None:
    assert format_timestamp(value) == expected


def test_result_envelopes() -> None:
    ok = text_result("done")
    failed = error_result("[BAD_URL] invalid")

    assert ok.isError is False
    assert ok.content[0].text == "done"
    assert failed.isError is True
    assert failed.content[0].text == "Error: [BAD_URL] invalid"


def test_handle_tool_error_keeps_classified_message() -> None:
    result = handle_tool_error(AuthError("token expired"))

    assert result.isError is True
    assert result.content[0].text == "Error: token expired"


def test_handle_tool_error_classifies_stray_transport_errors() -> None:
    request = httpx.Request("GET", "https://example.test")

    timeout = handle_tool_error(httpx.ReadTimeout("slow", request=request))
    refused = handle_tool_error(httpx.ConnectError("refused", request=request))

    assert timeout.content[0].text == "Error: Request timed out. Please try again."
    assert refused.content[0].text.startswith("Error: Network error:")


def test_handle_tool_error_never_raises_on_unexpected_exceptions() -> None:
    result = handle_tool_error(KeyError("id"))

    assert result.isError is True
    assert result.content[0].text.startswith("Error: Unexpected error: KeyError")


def test_classify_transport_error_kinds() -> None:
    request = httpx.Request("GET", "https://example.test")

    assert isinstance(classify_transport_error(httpx.ConnectTimeout("t", request=request)), RequestTimeoutError)
    assert isinstance(classify_transport_error(httpx.RemoteProtocolError("p", request=request)), NetworkError)


def test_credential_is_immutable_and_normalised() -> None:
    credential = Credential(token="abc", base_url="https://linkbrain.cloud/")

    assert credential.base_url == "https://linkbrain.cloud"
    with pytest.raises(pydantic.ValidationError):
        credential.token = "other"


def test_require_env_exits_with_remediation(monkeypatch, capsys) -> None:
    monkeypatch.delenv("SOME_API_KEY", raising=False)

    with pytest.raises(SystemExit) as exc_info:
        require_env("SOME_API_KEY", "Create one in the dashboard.")

    assert exc_info.value.code == 1
    stderr = capsys.readouterr().err
    assert "SOME_API_KEY" in stderr
    assert "Create one in the dashboard." in stderr


def test_require_env_returns_value(monkeypatch) -> None:
    monkeypatch.setenv("SOME_API_KEY", "  secret  ")
    assert require_env("SOME_API_KEY", "unused") == "secret"


@pytest.mark.parametrize(
    "module,variable",
    [
        (linkbrain_mcp_server, "LINKBRAIN_API_KEY"),
        (threads_mcp_server, "THREADS_ACCESS_TOKEN"),
    ],
)
def test_servers_refuse_to_start_without_credential(module, variable, monkeypatch, capsys) -> None:
    monkeypatch.delenv(variable, raising=False)

    with pytest.raises(SystemExit) as exc_info:
        module.main()

    assert exc_info.value.code == 1
    assert variable in capsys.readouterr().err
