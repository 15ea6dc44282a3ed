"""Tests for the MCP-backed comment source."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from comment_monitor.adapters.mcp import McpCommentSource, parse_comment_list
from comment_monitor.core import CommentFetchError, ToolCallError


def reply(reply_id, text, create_time="1735689600", user_name="Alice"):
    return {
        "reply_id": reply_id,
        "user_id": "ou_123",
        "user_name": user_name,
        "create_time": create_time,
        "content": {"elements": [{"type": "text_run", "text_run": {"text": text}}]},
    }


COMMENT_LIST = {
    "items": [
        {
            "comment_id": "c1",
            "quote": "Introduction",
            "is_solved": False,
            "reply_list": {"replies": [reply("r1", "Make the title bold"), reply("r2", "Also fix typos")]},
        },
        {
            "comment_id": "c2",
            "reply_list": {"replies": [reply("r3", "Translate this section")]},
        },
    ]
}


def test_parse_comment_list() -> None:
    snapshot = parse_comment_list(COMMENT_LIST)

    assert [c.comment_id for c in snapshot.comments] == ["c1", "c2"]
    assert snapshot.reply_count() == 3
    first = snapshot.comments[0].replies[0]
    assert first.reply_id == "r1"
    assert first.author == "Alice"
    assert first.text == "Make the title bold"
    assert first.created_at == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert snapshot.comments[0].quote == "Introduction"


def test_parse_comment_list_envelope() -> None:
    snapshot = parse_comment_list({"code": 0, "msg": "success", "data": COMMENT_LIST})

    assert snapshot.reply_ids() == {"r1", "r2", "r3"}


def test_parse_comment_list_error_code() -> None:
    with pytest.raises(CommentFetchError, match="99991663"):
        parse_comment_list({"code": 99991663, "msg": "invalid access token"})


def test_parse_malformed_fields_degrade() -> None:
    """Test that malformed replies degrade to defaults instead of failing."""
    data = {
        "items": [
            {"comment_id": "c1", "reply_list": None},
            {"comment_id": "c2", "reply_list": {"replies": [
                {"reply_id": None, "content": "not a dict"},
                {"reply_id": "r9", "create_time": "yesterday", "content": {"elements": [
                    {"type": "mention_user", "mention_user": {"user_id": "x"}},
                    {"type": "text_run", "text_run": {"text": "hello"}},
                    "junk",
                ]}},
                "junk",
            ]}},
            "junk",
        ]
    }

    snapshot = parse_comment_list(data)

    assert len(snapshot.comments) == 2
    assert snapshot.comments[0].replies == []
    anonymous, r9 = snapshot.comments[1].replies
    assert anonymous.reply_id is None
    assert anonymous.text == ""
    assert r9.text == "hello"
    assert r9.created_at is None
    assert r9.author == "unknown user"


def test_parse_empty_list() -> None:
    assert parse_comment_list({"items": None}).comments == []
    assert parse_comment_list({}).comments == []


@pytest.mark.asyncio
async def test_fetch_calls_comment_tool() -> None:
    tool_client = AsyncMock()
    tool_client.call_tool.return_value = json.dumps(COMMENT_LIST)
    source = McpCommentSource(tool_client)

    snapshot = await source.fetch("doxcnABC")

    assert snapshot.reply_count() == 3
    tool_client.call_tool.assert_called_once_with(
        "drive_comment_list",
        {"file_token": "doxcnABC", "file_type": "docx", "is_whole": True, "is_solved": False},
    )


@pytest.mark.asyncio
async def test_fetch_wraps_tool_errors() -> None:
    tool_client = AsyncMock()
    tool_client.call_tool.side_effect = ToolCallError("401 Unauthorized")
    source = McpCommentSource(tool_client)

    with pytest.raises(CommentFetchError, match="401"):
        await source.fetch("doxcnABC")


@pytest.mark.asyncio
async def test_fetch_rejects_non_json() -> None:
    tool_client = AsyncMock()
    tool_client.call_tool.return_value = "Service unavailable"
    source = McpCommentSource(tool_client)

    with pytest.raises(CommentFetchError, match="not valid JSON"):
        await source.fetch("doxcnABC")
