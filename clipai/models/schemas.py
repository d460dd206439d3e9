"""Data models for the ClipAI knowledge document."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_serializer,
    model_validator,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ClipContentType(str, Enum):
    """Kind of payload stored in a clip."""

    TEXT = "text"
    IMAGE = "image"


class ClipMetadata(BaseModel):
    """Content-specific details: text length for text, dimensions for images."""

    model_config = ConfigDict(frozen=True)

    text_length: Optional[int] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None

    @classmethod
    def for_text(cls, text_length: int) -> "ClipMetadata":
        return cls(text_length=text_length)

    @classmethod
    def for_image(cls, image_width: int, image_height: int) -> "ClipMetadata":
        return cls(image_width=image_width, image_height=image_height)

    @property
    def is_text(self) -> bool:
        return (
            self.text_length is not None
            and self.image_width is None
            and self.image_height is None
        )

    @property
    def is_image(self) -> bool:
        return (
            self.text_length is None
            and self.image_width is not None
            and self.image_height is not None
        )

    @model_serializer(mode="wrap")
    def _omit_absent(self, handler) -> Dict[str, Any]:
        # Only the group matching the content type is written out
        return {key: value for key, value in handler(self).items() if value is not None}


class Clip(BaseModel):
    """A captured clipboard item.

    Records are immutable; the timestamp is the only field ever refreshed,
    and that happens through ``with_updated_timestamp`` which returns a copy.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    content: str
    content_type: ClipContentType
    source_app: Optional[str] = None
    source_url: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    metadata: Optional[ClipMetadata] = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _metadata_matches_type(self) -> "Clip":
        if self.metadata is None:
            return self
        if self.content_type is ClipContentType.TEXT and not self.metadata.is_text:
            raise ValueError("text clips only carry text_length metadata")
        if self.content_type is ClipContentType.IMAGE and not self.metadata.is_image:
            raise ValueError("image clips only carry image_width/image_height metadata")
        return self

    @property
    def key(self) -> tuple:
        """Natural key used for upserts."""
        return (self.source_app, self.content)

    def with_updated_timestamp(self, timestamp: Optional[datetime] = None) -> "Clip":
        """Return a copy with only the timestamp replaced (defaults to now)."""
        new_timestamp = timestamp if timestamp is not None else utc_now()
        if new_timestamp.tzinfo is None:
            new_timestamp = new_timestamp.replace(tzinfo=timezone.utc)
        return self.model_copy(update={"timestamp": new_timestamp})


class KnowledgeFile(BaseModel):
    """Structure of knowledge.json."""

    clips: List[Clip] = Field(default_factory=list)
