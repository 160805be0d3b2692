"""Chat message models.

Message metadata is stored as free-form JSON. It is only trusted after
``parse_message_content`` has validated it against the variant selected by the
message's ``message_type``.
"""

from enum import Enum
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class MessageType(str, Enum):
    """Chat message types."""
    TEXT = "text"
    IMAGE = "image"
    PRICE_PROPOSAL = "price_proposal"
    DATE_PROPOSAL = "date_proposal"


class ProposalType(str, Enum):
    """Which negotiated term a proposal carries."""
    PRICE = "price"
    DATE = "date"

    @property
    def message_type(self) -> MessageType:
        if self is ProposalType.PRICE:
            return MessageType.PRICE_PROPOSAL
        return MessageType.DATE_PROPOSAL


class ProposalAction(str, Enum):
    """How a proposal was answered."""
    ACCEPTED = "accepted"
    DECLINED = "declined"


class TextContent(BaseModel):
    kind: Literal["text"] = "text"
    in_reply_to: Optional[str] = Field(None, description="Proposal message this text answers")
    action: Optional[ProposalAction] = None


class ImageContent(BaseModel):
    kind: Literal["image"] = "image"
    image_url: str = Field(..., min_length=1)


class PriceProposal(BaseModel):
    kind: Literal["price_proposal"] = "price_proposal"
    price: float = Field(..., gt=0)
    currency: Optional[str] = None


class DateProposal(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["date_proposal"] = "date_proposal"
    at: datetime = Field(..., alias="datetime", description="Proposed date and time")
    date: Optional[str] = None
    time: Optional[str] = None


MessageContent = Annotated[
    Union[TextContent, ImageContent, PriceProposal, DateProposal],
    Field(discriminator="kind"),
]

_content_adapter = TypeAdapter(MessageContent)


def parse_message_content(message_type: str, metadata: Optional[dict]) -> Optional[Any]:
    """
    Validate message metadata against its message type.

    Returns the typed content, or None when the metadata does not fit.
    """
    payload = dict(metadata or {})
    payload["kind"] = message_type.value if isinstance(message_type, MessageType) else message_type
    try:
        return _content_adapter.validate_python(payload)
    except ValidationError:
        return None


def content_metadata(content: BaseModel) -> dict:
    """Serialize typed content back into the stored metadata shape."""
    return content.model_dump(mode="json", by_alias=True, exclude={"kind"}, exclude_none=True)


class Message(BaseModel):
    """Append-only chat message within a match thread."""
    id: str = Field(..., description="Message ID (ULID)")
    match_id: str
    sender_id: str
    recipient_id: Optional[str] = None
    content: str = ""
    message_type: MessageType = MessageType.TEXT
    metadata: Optional[dict[str, Any]] = Field(default_factory=dict)
    read_at: Optional[str] = None
    processed_at: Optional[str] = None
    processed_action: Optional[ProposalAction] = None
    created_at: Optional[str] = None

    def parsed_content(self):
        return parse_message_content(self.message_type, self.metadata)
