"""Detection of comment replies added between two snapshots."""

from typing import Optional

from comment_monitor.core.entities import CommentSnapshot, NewReply


def diff_snapshots(
    old: Optional[CommentSnapshot],
    new: CommentSnapshot,
    document_id: str = "",
) -> list[NewReply]:
    """Return replies present in ``new`` whose id was absent from ``old``.

    The first snapshot of a job (``old is None``) only establishes a baseline
    and never yields new replies. Output follows the order of ``new``.
    Replies without an id cannot be deduplicated and are skipped.
    """
    if old is None:
        return []

    known_ids = old.reply_ids()
    new_replies: list[NewReply] = []

    for comment in new.comments:
        for reply in comment.replies:
            if not reply.reply_id or reply.reply_id in known_ids:
                continue
            new_replies.append(
                NewReply(document_id=document_id, comment=comment, reply=reply)
            )

    return new_replies
