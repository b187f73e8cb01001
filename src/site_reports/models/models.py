# site_reports/models.py
from datetime import datetime
from typing import FrozenSet, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors.errors import ValidationError

ChannelKind = Literal["general", "updates", "issues", "safety", "custom"]
MessageKind = Literal["text", "voice", "image", "system", "photo-report"]
ReportKind = Literal["progress", "issue"]
Severity = Literal["low", "medium", "high"]


def new_id() -> str:
    return uuid4().hex


class PhotoReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    image_ref: str
    kind: ReportKind
    description: str
    analysis_text: str
    timestamp: datetime = Field(default_factory=datetime.now)
    tags: FrozenSet[str] = frozenset()
    project_id: str
    severity: Optional[Severity] = None
    confidence: Optional[float] = None
    recommendations: tuple[str, ...] = ()
    location: Optional[str] = None


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    content: str
    kind: MessageKind
    sender_id: str
    sender_name: str
    timestamp: datetime = Field(default_factory=datetime.now)
    channel_id: str  # lookup only, the channel owns the message
    thread_id: Optional[str] = None
    photo_report: Optional[PhotoReport] = None


class Channel(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    name: str
    kind: ChannelKind
    messages: tuple[Message, ...] = ()


class Project(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    name: str
    external_project_id: str  # e.g. "PROJ-001"
    channels: tuple[Channel, ...] = ()

    @field_validator("channels")
    @classmethod
    def _unique_channel_ids(cls, channels: tuple[Channel, ...]) -> tuple[Channel, ...]:
        seen = set()
        for ch in channels:
            if ch.id in seen:
                raise ValueError(f"duplicate channel id {ch.id!r}")
            seen.add(ch.id)
        return channels

    def channel(self, channel_id: str) -> Optional[Channel]:
        return next((ch for ch in self.channels if ch.id == channel_id), None)

    def channel_of_kind(self, kind: ChannelKind) -> Optional[Channel]:
        return next((ch for ch in self.channels if ch.kind == kind), None)


class AnalysisResult(BaseModel):
    """Structured form of one block of free-form analysis text."""

    model_config = ConfigDict(frozen=True)

    kind: ReportKind
    severity: Optional[Severity] = None
    description: str
    recommendations: List[str]
    confidence: float


def _required(value: str, field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field} must not be empty")
    return value


def new_channel(name: str, kind: ChannelKind = "custom") -> Channel:
    return Channel(name=_required(name, "channel name").lower(), kind=kind)


def new_project(name: str, external_project_id: str) -> Project:
    """Create a project with the default general/issues/progress channels."""
    return Project(
        name=_required(name, "project name"),
        external_project_id=_required(external_project_id, "project id"),
        channels=(
            Channel(name="general", kind="general"),
            Channel(name="issues", kind="issues"),
            Channel(name="progress", kind="updates"),
        ),
    )


def new_text_message(
    channel_id: str, content: str, sender_id: str, sender_name: str
) -> Message:
    return Message(
        content=_required(content, "message content"),
        kind="text",
        sender_id=sender_id,
        sender_name=sender_name,
        channel_id=channel_id,
    )
