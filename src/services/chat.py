"""Chat thread service - append-only messages within a match."""

from typing import Any, Optional
from pydantic import BaseModel
from src.models.match import Match
from src.models.message import ImageContent, Message, MessageType, content_metadata
from src.models.user import UserProfile
from src.services.idempotency import generate_id
from src.services.media_upload import upload_message_image
from src.services.session import require_actor
from src.services.supabase_client import (
    conditional_update,
    fetch_rows,
    get_match_by_id,
    get_user_by_id,
    insert_row,
    utc_now_iso,
)
from src.utils.errors import NotParticipant, TargetNotFound
from src.utils.logging import get_structured_logger, mask_user_id, sanitize_message_text

logger = get_structured_logger(__name__)


class ThreadView(BaseModel):
    """Authoritative snapshot of a chat thread."""
    match: Match
    messages: list[Message]
    counterpart: Optional[UserProfile] = None


async def get_match(match_id: str) -> Match:
    """Fresh read of a match from the store."""
    row = await get_match_by_id(match_id)
    if not row:
        raise TargetNotFound(f"Match not found: {match_id}")
    return Match.model_validate(row)


async def load_match_for_actor(actor_id: str, match_id: str) -> Match:
    """Read a match and check the actor is one of its parties."""
    actor_id = require_actor(actor_id)
    match = await get_match(match_id)
    if not match.has_party(actor_id):
        raise NotParticipant("Not a participant of this match")
    return match


async def append_message(
    match: Match,
    sender_id: str,
    content: str,
    message_type: MessageType = MessageType.TEXT,
    metadata: Optional[dict[str, Any]] = None,
) -> Message:
    """Append a message to the thread, addressed to the sender's counterpart."""
    row = await insert_row("messages", {
        "id": generate_id(),
        "match_id": match.id,
        "sender_id": sender_id,
        "recipient_id": match.counterpart_of(sender_id),
        "content": content,
        "message_type": message_type.value,
        "metadata": metadata or {},
    })
    message = Message.model_validate(row)
    logger.debug(
        "Message appended",
        match_id=match.id,
        message_id=message.id,
        message_type=message_type.value,
        sender_id=mask_user_id(sender_id),
        message_preview=sanitize_message_text(content, max_length=100)
    )
    return message


async def send_text_message(actor_id: str, match_id: str, content: str) -> Message:
    """Send a plain text message."""
    match = await load_match_for_actor(actor_id, match_id)
    content = (content or "").strip()
    if not content:
        raise ValueError("Message content cannot be empty")
    return await append_message(match, actor_id, content)


async def send_image_message(actor_id: str, match_id: str, local_path: str) -> Message:
    """Upload an image and send it as a message carrying its public URL."""
    match = await load_match_for_actor(actor_id, match_id)
    image_url = await upload_message_image(local_path, actor_id)
    content = ImageContent(image_url=image_url)
    return await append_message(
        match,
        actor_id,
        "Sent an image",
        MessageType.IMAGE,
        content_metadata(content),
    )


async def fetch_messages(match_id: str, since: Optional[str] = None, limit: Optional[int] = None) -> list[Message]:
    rows = await fetch_rows(
        "messages",
        filters={"match_id": match_id},
        gt={"created_at": since} if since else None,
        order_by=["created_at", "id"],
        limit=limit,
    )
    return [Message.model_validate(row) for row in rows]


async def list_messages(
    actor_id: str,
    match_id: str,
    since: Optional[str] = None,
    limit: Optional[int] = None,
) -> list[Message]:
    """Messages of a thread, oldest first, optionally only those after ``since``."""
    await load_match_for_actor(actor_id, match_id)
    return await fetch_messages(match_id, since=since, limit=limit)


async def mark_thread_read(actor_id: str, match_id: str) -> int:
    """
    Mark the counterpart's unread messages as read.

    Only rows whose read_at is still null are touched, so read state never
    moves backwards. Returns the number of messages marked.
    """
    await load_match_for_actor(actor_id, match_id)
    rows = await conditional_update(
        "messages",
        {"read_at": utc_now_iso()},
        filters={"match_id": match_id, "read_at": None},
        neq={"sender_id": actor_id},
    )
    if rows:
        logger.debug("Messages marked read", match_id=match_id, count=len(rows))
    return len(rows)


async def get_thread(actor_id: str, match_id: str) -> ThreadView:
    """
    Load a thread for display.

    The counterpart profile is enrichment only: if it cannot be read the view
    is returned without it.
    """
    match = await load_match_for_actor(actor_id, match_id)
    messages = await fetch_messages(match_id)

    counterpart = None
    counterpart_id = match.counterpart_of(actor_id)
    try:
        row = await get_user_by_id(counterpart_id)
        counterpart = UserProfile.model_validate(row) if row else None
    except Exception as e:
        logger.warning(
            "Failed to load counterpart profile",
            match_id=match_id,
            counterpart_id=mask_user_id(counterpart_id),
            error=str(e)
        )

    return ThreadView(match=match, messages=messages, counterpart=counterpart)
