"""Data models for the chat pipeline."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ..core.models import ConnectionStatus, Platform

CONNECTION_ACK_TEXT = "Connected to multichat server"


@dataclass
class AdapterEvent:
    """A chat message as reported by a platform adapter, before normalization."""

    username: str
    text: str
    badges: list[str] = field(default_factory=list)  # source order, duplicates kept
    color: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)  # platform-specific context


@dataclass(frozen=True)
class ChatMessage:
    """Canonical chat message. Immutable once created."""

    id: str
    timestamp: int  # server receipt time, epoch milliseconds
    platform: Platform
    username: str
    text: str
    badges: tuple[str, ...] = ()
    color: str | None = None
    raw: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({}), compare=False, hash=False
    )

    def to_frame(self) -> dict:
        """Serialize to the wire chat frame."""
        return {
            "id": self.id,
            "ts": self.timestamp,
            "platform": self.platform.value,
            "username": self.username,
            "message": self.text,
            "badges": list(self.badges),
            "color": self.color,
            "raw": dict(self.raw),
        }

    @classmethod
    def from_frame(cls, frame: Mapping[str, Any]) -> "ChatMessage":
        """Build a message from a wire chat frame.

        Raises:
            KeyError: A required field is missing.
            ValueError: The platform or timestamp is invalid.
        """
        return cls(
            id=str(frame["id"]),
            timestamp=int(frame["ts"]),
            platform=Platform(frame["platform"]),
            username=str(frame.get("username") or "unknown"),
            text=str(frame.get("message") or ""),
            badges=tuple(str(b) for b in frame.get("badges") or ()),
            color=frame.get("color") or None,
            raw=MappingProxyType(dict(frame.get("raw") or {})),
        )


@dataclass
class StatusEvent:
    """Non-chat wire event: connection acknowledgment or adapter status change."""

    type: str
    message: str | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def connection_ack(cls) -> "StatusEvent":
        return cls(type="connection", message=CONNECTION_ACK_TEXT)

    @classmethod
    def for_platform(
        cls, platform: Platform, status: ConnectionStatus, detail: str = ""
    ) -> "StatusEvent":
        return cls(
            type=platform.status_type,
            data={"platform": platform.value, "status": status.value, "message": detail},
        )

    def to_frame(self) -> dict:
        frame: dict[str, Any] = {"type": self.type}
        if self.message is not None:
            frame["message"] = self.message
        if self.data is not None:
            frame["data"] = self.data
        return frame


def is_chat_frame(frame: Mapping[str, Any]) -> bool:
    """Chat frames carry no ``type`` discriminator; status frames always do."""
    return "type" not in frame


@dataclass(frozen=True)
class ChatBadge:
    """A renderable badge (sub, mod, bits, etc.)."""

    id: str
    title: str
    image_url: str
    tier: int | None = None  # subscription months or cheer threshold


@dataclass(frozen=True)
class BadgeResolution:
    """Result of resolving one badge identifier.

    ``badge`` is None when the identifier has no renderable entry; the caller
    decides whether to show ``label`` as plain text instead.
    """

    badge_id: str
    badge: ChatBadge | None = None

    @property
    def resolved(self) -> bool:
        return self.badge is not None

    @property
    def label(self) -> str:
        return self.badge.title if self.badge else self.badge_id


@dataclass(frozen=True)
class ChatEmote:
    """Represents a chat emote from any provider."""

    id: str
    name: str  # Text code (e.g., "KEKW")
    url: str
    provider: str  # "twitch", "7tv", "bttv", "ffz", "file"


@dataclass(frozen=True)
class TextSegment:
    """Plain text run of a message."""

    text: str


@dataclass(frozen=True)
class EmoteSegment:
    """A whole token replaced by an emote."""

    emote: ChatEmote

    @property
    def text(self) -> str:
        return self.emote.name
