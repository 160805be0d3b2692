"""Negotiation state machine - price and date proposals inside a match thread.

States: pending -> negotiating -> (confirmed | cancelled).

Proposals are structured chat messages. Accepting one writes the proposed
value onto the match's final field and moves the match to ``negotiating``.
Declining one only appends a message. Each proposal carries a processed flag
(``processed_at``/``processed_action``) that is claimed once, so answering the
same proposal again never applies it twice or duplicates the reply.

Every decision is taken on a fresh read of the match, and every write is a
conditional update on the status it expects.
"""

from datetime import datetime
from typing import Optional, Union
from pydantic import ValidationError
from src.models.match import Match, MatchStatus, OPEN_MATCH_STATUSES
from src.models.message import (
    DateProposal,
    Message,
    MessageType,
    PriceProposal,
    ProposalAction,
    ProposalType,
    TextContent,
    content_metadata,
)
from src.services import booking_lifecycle
from src.services.chat import append_message, fetch_messages, get_match, load_match_for_actor
from src.services.notifications import (
    PROPOSAL_ACCEPTED,
    PROPOSAL_DECLINED,
    chat_link,
    dispatch_notification,
)
from src.services.supabase_client import conditional_update, get_message_by_id, utc_now_iso
from src.utils.errors import InvalidTransition, ProposalNotFound
from src.utils.logging import get_structured_logger, log_timing, mask_user_id

logger = get_structured_logger(__name__)


def _require_open(match: Match) -> None:
    if match.status.value not in OPEN_MATCH_STATUSES:
        raise InvalidTransition(
            f"Match is {match.status.value}, terms can no longer change",
            details={"match_id": match.id, "status": match.status.value}
        )


def _format_price(price: float, currency: Optional[str]) -> str:
    amount = f"{price:.2f}"
    return f"{amount} {currency}" if currency else amount


async def _update_open_match(match: Match, updates: dict) -> Match:
    """Apply updates only while the match is still open for negotiation."""
    rows = await conditional_update(
        "matches",
        updates,
        filters={"id": match.id},
        in_filters={"status": OPEN_MATCH_STATUSES},
    )
    if not rows:
        current = await get_match(match.id)
        raise InvalidTransition(
            f"Match is {current.status.value}, terms can no longer change",
            details={"match_id": match.id, "status": current.status.value}
        )
    return Match.model_validate(rows[0])


async def propose_price(
    actor_id: str,
    match_id: str,
    price: float,
    currency: Optional[str] = None,
) -> Message:
    """Send a price proposal. Records proposed_price, leaves status unchanged."""
    match = await load_match_for_actor(actor_id, match_id)
    _require_open(match)
    proposal = PriceProposal(price=price, currency=currency)

    match = await _update_open_match(match, {"proposed_price": proposal.price})
    message = await append_message(
        match,
        actor_id,
        f"Price proposal: {_format_price(proposal.price, proposal.currency)}",
        MessageType.PRICE_PROPOSAL,
        content_metadata(proposal),
    )

    logger.info("Price proposed", match_id=match.id, message_id=message.id, price=proposal.price)
    return message


async def propose_date(actor_id: str, match_id: str, when: Union[datetime, str]) -> Message:
    """Send a date proposal. Records proposed_date, leaves status unchanged."""
    match = await load_match_for_actor(actor_id, match_id)
    _require_open(match)
    proposal = DateProposal(datetime=when)
    proposal.date = proposal.at.date().isoformat()
    proposal.time = proposal.at.strftime("%H:%M")

    match = await _update_open_match(match, {"proposed_date": proposal.at.isoformat()})
    message = await append_message(
        match,
        actor_id,
        f"Date proposal: {proposal.at.isoformat()}",
        MessageType.DATE_PROPOSAL,
        content_metadata(proposal),
    )

    logger.info("Date proposed", match_id=match.id, message_id=message.id, proposed_date=proposal.at.isoformat())
    return message


async def _load_proposal(match: Match, message_id: str, proposal_type: ProposalType):
    """Read a proposal message and its validated metadata."""
    row = await get_message_by_id(message_id)
    if not row or row.get("match_id") != match.id:
        raise ProposalNotFound(f"Proposal not found: {message_id}")

    try:
        message = Message.model_validate(row)
    except ValidationError as e:
        raise ProposalNotFound(f"Message {message_id} is not a proposal") from e

    if message.message_type != proposal_type.message_type:
        raise ProposalNotFound(f"Message {message_id} is not a {proposal_type.value} proposal")

    proposal = message.parsed_content()
    if proposal is None:
        raise ProposalNotFound(f"Proposal {message_id} has no valid metadata")

    return message, proposal


async def _claim_proposal(message: Message, action: ProposalAction) -> bool:
    """Set the processed flag. Only one caller can ever win the claim."""
    rows = await conditional_update(
        "messages",
        {"processed_at": utc_now_iso(), "processed_action": action.value},
        filters={"id": message.id, "processed_at": None},
    )
    return bool(rows)


async def _claim_for_accept(message: Message) -> bool:
    """
    Claim a proposal for acceptance before anything is applied.

    Returns False when a concurrent accept already holds the claim. Raises
    InvalidTransition when a concurrent decline won it.
    """
    if await _claim_proposal(message, ProposalAction.ACCEPTED):
        return True

    current = Message.model_validate(await get_message_by_id(message.id))
    if current.processed_action == ProposalAction.DECLINED:
        raise InvalidTransition("Proposal was already declined")
    return False


async def _release_claim(message: Message) -> None:
    """Undo an accept claim whose match update was refused."""
    await conditional_update(
        "messages",
        {"processed_at": None, "processed_action": None},
        filters={"id": message.id, "processed_action": ProposalAction.ACCEPTED.value},
    )


async def _find_reply(match_id: str, proposal_id: str, action: ProposalAction) -> Optional[Message]:
    for message in await fetch_messages(match_id):
        content = message.parsed_content()
        if isinstance(content, TextContent) and content.in_reply_to == proposal_id and content.action == action:
            return message
    return None


async def accept_proposal(
    actor_id: str,
    match_id: str,
    message_id: str,
    proposal_type: Union[ProposalType, str],
) -> Match:
    """
    Accept a price or date proposal.

    Claims the proposal, then writes the proposed value to
    final_price/final_date, sets the match to negotiating and posts a
    confirmation to the counterpart. Accepting an already accepted proposal,
    or a value the match already holds, returns the match unchanged without
    a new message.
    """
    proposal_type = ProposalType(proposal_type)
    match = await load_match_for_actor(actor_id, match_id)
    message, proposal = await _load_proposal(match, message_id, proposal_type)

    if message.sender_id == actor_id:
        raise InvalidTransition("Cannot answer your own proposal")
    if message.processed_action == ProposalAction.DECLINED:
        raise InvalidTransition("Proposal was already declined")
    if message.processed_action == ProposalAction.ACCEPTED:
        logger.info("Proposal already accepted, nothing to do", match_id=match.id, message_id=message.id)
        return match

    _require_open(match)

    if proposal_type == ProposalType.PRICE:
        field, value, stored = "final_price", proposal.price, proposal.price
        summary = f"Accepted price: {_format_price(proposal.price, proposal.currency)}"
    else:
        field, value, stored = "final_date", proposal.at, proposal.at.isoformat()
        summary = f"Accepted date: {proposal.at.isoformat()}"

    if getattr(match, field) == value:
        # Value already applied; mark the proposal without replying again
        await _claim_for_accept(message)
        logger.info("Proposal value already applied", match_id=match.id, message_id=message.id)
        return match

    if not await _claim_for_accept(message):
        logger.info("Proposal accepted concurrently, nothing to do", match_id=match.id, message_id=message.id)
        return await get_match(match.id)

    with log_timing("accept_proposal", logger=logger, match_id=match.id, proposal_type=proposal_type.value):
        try:
            match = await _update_open_match(
                match,
                {field: stored, "status": MatchStatus.NEGOTIATING.value}
            )
        except InvalidTransition:
            await _release_claim(message)
            raise

        reply = TextContent(in_reply_to=message.id, action=ProposalAction.ACCEPTED)
        await append_message(match, actor_id, summary, MessageType.TEXT, content_metadata(reply))
        await dispatch_notification(
            message.sender_id,
            PROPOSAL_ACCEPTED,
            "Proposal accepted",
            summary,
            chat_link(match.id)
        )

    logger.info(
        "Proposal accepted",
        match_id=match.id,
        message_id=message.id,
        proposal_type=proposal_type.value,
        actor_id=mask_user_id(actor_id)
    )

    await booking_lifecycle.sync_booking_from_match(match)
    return match


async def decline_proposal(
    actor_id: str,
    match_id: str,
    message_id: str,
    proposal_type: Union[ProposalType, str],
) -> Optional[Message]:
    """
    Decline a price or date proposal.

    Appends a decline message and never touches the match. Declining again
    returns the earlier decline message.
    """
    proposal_type = ProposalType(proposal_type)
    match = await load_match_for_actor(actor_id, match_id)
    message, _ = await _load_proposal(match, message_id, proposal_type)

    if message.sender_id == actor_id:
        raise InvalidTransition("Cannot answer your own proposal")
    if message.processed_action == ProposalAction.ACCEPTED:
        raise InvalidTransition("Proposal was already accepted")
    if message.processed_action == ProposalAction.DECLINED:
        return await _find_reply(match.id, message.id, ProposalAction.DECLINED)

    if not await _claim_proposal(message, ProposalAction.DECLINED):
        # Answered concurrently; report whatever answer won
        current = Message.model_validate(await get_message_by_id(message.id))
        if current.processed_action == ProposalAction.ACCEPTED:
            raise InvalidTransition("Proposal was already accepted")
        return await _find_reply(match.id, message.id, ProposalAction.DECLINED)

    reply = TextContent(in_reply_to=message.id, action=ProposalAction.DECLINED)
    decline = await append_message(
        match,
        actor_id,
        f"Declined {proposal_type.value} proposal",
        MessageType.TEXT,
        content_metadata(reply),
    )
    await dispatch_notification(
        message.sender_id,
        PROPOSAL_DECLINED,
        "Proposal declined",
        f"Your {proposal_type.value} proposal was declined",
        chat_link(match.id)
    )
    logger.info("Proposal declined", match_id=match.id, message_id=message.id, proposal_type=proposal_type.value)
    return decline


async def cancel_match(actor_id: str, match_id: str, reason: Optional[str] = None) -> Match:
    """Walk away from a negotiation. Cancels the match and any open booking."""
    match = await load_match_for_actor(actor_id, match_id)
    _require_open(match)

    if match.booking_id:
        await booking_lifecycle.cancel_booking(actor_id, match.booking_id, reason=reason)
        return await get_match(match.id)

    match = await _update_open_match(
        match,
        {"status": MatchStatus.CANCELLED.value, "cancelled_at": utc_now_iso()}
    )
    logger.info("Match cancelled", match_id=match.id, actor_id=mask_user_id(actor_id))
    return match
