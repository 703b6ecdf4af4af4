from collections import Counter
from typing import Dict, Iterable, List, Sequence, Tuple

from app.schemas.chat import Message, MessageReaction


def organize_messages_into_threads(
    messages: Iterable[Message],
) -> Tuple[List[Message], Dict[int, List[Message]]]:
    """
    Split a flat message list into top-level messages and reply threads.

    Returns:
        (top_level, replies) where replies maps a parent message id to its
        replies. Both the top-level list and every reply list are ordered
        by created_at; equal timestamps keep their input order.
    """
    top_level: List[Message] = []
    replies: Dict[int, List[Message]] = {}

    for message in messages:
        if message.parent_message_id is None:
            top_level.append(message)
        else:
            replies.setdefault(message.parent_message_id, []).append(message)

    top_level.sort(key=lambda m: m.created_at)
    for thread in replies.values():
        thread.sort(key=lambda m: m.created_at)

    return top_level, replies


def find_orphaned_threads(
    top_level: Sequence[Message],
    replies: Dict[int, List[Message]],
) -> Dict[int, List[Message]]:
    """Reply groups whose parent is not among the top-level messages"""
    known = {m.id for m in top_level}
    return {parent: thread for parent, thread in replies.items() if parent not in known}


def summarize_reactions(
    reactions: Iterable[MessageReaction],
    limit: int = 3,
) -> List[Tuple[str, int]]:
    """Most used emojis on a message with their counts"""
    return Counter(r.emoji for r in reactions).most_common(limit)
