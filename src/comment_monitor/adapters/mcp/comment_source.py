"""Comment source backed by the document tool server."""

import json
from datetime import datetime, timezone
from typing import Any, Optional

from comment_monitor.core import (
    Comment,
    CommentFetchError,
    CommentSnapshot,
    CommentSource,
    Reply,
    ToolCallError,
    ToolClient,
)


class McpCommentSource(CommentSource):
    """Fetch whole-document comments through the ``drive_comment_list`` tool."""

    def __init__(
        self,
        tool_client: ToolClient,
        tool_name: str = "drive_comment_list",
        file_type: str = "docx",
    ) -> None:
        self.tool_client = tool_client
        self.tool_name = tool_name
        self.file_type = file_type

    async def fetch(self, document_id: str) -> CommentSnapshot:
        """Fetch all comments, solved or not, of the whole document."""
        try:
            raw = await self.tool_client.call_tool(
                self.tool_name,
                {
                    "file_token": document_id,
                    "file_type": self.file_type,
                    "is_whole": True,
                    "is_solved": False,
                },
            )
        except ToolCallError as e:
            raise CommentFetchError(str(e)) from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CommentFetchError(f"Comment list is not valid JSON: {e}") from e

        return parse_comment_list(data)


def parse_comment_list(data: Any) -> CommentSnapshot:
    """Build a snapshot from a ``drive_comment_list`` response.

    Accepts both the bare ``{"items": [...]}`` shape and the API envelope
    ``{"code": 0, "data": {"items": [...]}}``.

    Raises:
        CommentFetchError: if the response reports an error or has no item list.
    """
    if not isinstance(data, dict):
        raise CommentFetchError("Comment list response is not an object")

    if "code" in data and data["code"] != 0:
        raise CommentFetchError(f"Comment list error {data['code']}: {data.get('msg', 'unknown')}")

    body = data.get("data") if isinstance(data.get("data"), dict) else data
    items = body.get("items") or []
    if not isinstance(items, list):
        raise CommentFetchError("Comment list items is not a list")

    comments = [_parse_comment(item) for item in items if isinstance(item, dict)]
    return CommentSnapshot(comments=comments)


def _parse_comment(item: dict) -> Comment:
    reply_list = item.get("reply_list") or {}
    replies = reply_list.get("replies") if isinstance(reply_list, dict) else None

    return Comment(
        comment_id=str(item.get("comment_id", "")),
        replies=[_parse_reply(r) for r in replies or [] if isinstance(r, dict)],
        quote=str(item.get("quote") or ""),
        is_solved=bool(item.get("is_solved", False)),
    )


def _parse_reply(reply: dict) -> Reply:
    reply_id = reply.get("reply_id")
    return Reply(
        reply_id=str(reply_id) if reply_id else None,
        author=str(reply.get("user_name") or reply.get("user_id") or "unknown user"),
        created_at=_parse_timestamp(reply.get("create_time")),
        text=_reply_text(reply.get("content")),
    )


def _reply_text(content: Any) -> str:
    """Join the plain text runs of a reply body."""
    if not isinstance(content, dict):
        return ""

    parts = []
    for element in content.get("elements") or []:
        if not isinstance(element, dict):
            continue
        text_run = element.get("text_run")
        if isinstance(text_run, dict) and text_run.get("text"):
            parts.append(str(text_run["text"]))
    return "".join(parts)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse epoch seconds (int or numeric string)."""
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
