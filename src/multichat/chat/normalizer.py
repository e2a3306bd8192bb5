"""Normalize adapter events into canonical chat messages."""

import time
import uuid
from types import MappingProxyType

from ..core.models import Platform
from .models import AdapterEvent, ChatMessage

FALLBACK_USERNAME = "unknown"


def normalize(platform: Platform, event: AdapterEvent) -> ChatMessage:
    """Stamp an adapter event with a fresh id and the server receipt time.

    The event is not modified: badges are copied into a tuple and ``raw`` into
    a read-only mapping.
    """
    raw = dict(event.raw)
    username = event.username or str(raw.get("user_id") or "") or FALLBACK_USERNAME
    return ChatMessage(
        id=uuid.uuid4().hex,
        timestamp=int(time.time() * 1000),
        platform=Platform(platform),
        username=username,
        text=event.text or "",
        badges=tuple(event.badges or ()),
        color=event.color or None,
        raw=MappingProxyType(raw),
    )
