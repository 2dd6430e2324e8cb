# aibot/data_schemas/queue_message.py

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class Source(str, Enum):
    """Channel a message arrived from"""

    WHATSAPP = "WHATSAPP"
    WEB = "WEB"
    API = "API"


class MessageType(str, Enum):
    """Shape of the message payload"""

    TEXT = "TEXT"
    IMAGE = "IMAGE"
    DOCUMENT = "DOCUMENT"


class QueueMessage(BaseModel):
    """
    Channel-independent envelope for an inbound chat event.

    Created once at ingestion, published to the chat queue as camelCase JSON
    and consumed by exactly one worker delivery. Instances are immutable.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source: Source
    message_type: MessageType
    session_id: str
    sender_phone: Optional[str] = None  # For WhatsApp: the phone number to reply to
    text: Optional[str] = None  # The message text or caption
    media_file_path: Optional[str] = None  # Local path where the media file is stored
    mime_type: Optional[str] = None
    original_filename: Optional[str] = None  # Documents only
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("session_id")
    @classmethod
    def session_id_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("sessionId must not be blank")
        return value

    @model_validator(mode="after")
    def check_payload_shape(self) -> "QueueMessage":
        """messageType decides which of text/mediaFilePath/mimeType are required."""
        if self.message_type == MessageType.TEXT:
            if self.text is None:
                raise ValueError("TEXT messages require text")
        elif not self.media_file_path or not self.mime_type:
            raise ValueError(
                f"{self.message_type.value} messages require mediaFilePath and mimeType"
            )

        if self.source == Source.WHATSAPP and not self.sender_phone:
            raise ValueError("WHATSAPP messages require senderPhone")
        return self

    @property
    def has_caption(self) -> bool:
        return bool(self.text and self.text.strip())

    @classmethod
    def for_whatsapp_text(cls, sender_phone: str, text: str) -> "QueueMessage":
        return cls(
            source=Source.WHATSAPP,
            message_type=MessageType.TEXT,
            session_id=sender_phone,
            sender_phone=sender_phone,
            text=text,
        )

    @classmethod
    def for_whatsapp_image(
        cls, sender_phone: str, caption: Optional[str], file_path: str, mime_type: str
    ) -> "QueueMessage":
        return cls(
            source=Source.WHATSAPP,
            message_type=MessageType.IMAGE,
            session_id=sender_phone,
            sender_phone=sender_phone,
            text=caption,
            media_file_path=file_path,
            mime_type=mime_type,
        )

    @classmethod
    def for_whatsapp_document(
        cls,
        sender_phone: str,
        caption: Optional[str],
        file_path: str,
        mime_type: str,
        original_filename: Optional[str],
    ) -> "QueueMessage":
        return cls(
            source=Source.WHATSAPP,
            message_type=MessageType.DOCUMENT,
            session_id=sender_phone,
            sender_phone=sender_phone,
            text=caption,
            media_file_path=file_path,
            mime_type=mime_type,
            original_filename=original_filename,
        )

    def to_json(self) -> bytes:
        """Serialize for the queue (camelCase keys, UTF-8)"""
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def from_json(cls, data: Union[bytes, str]) -> "QueueMessage":
        return cls.model_validate_json(data)
