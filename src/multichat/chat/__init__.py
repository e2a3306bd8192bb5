"""Chat aggregation pipeline."""

from .hub import BroadcastHub
from .manager import AdapterSupervisor
from .models import AdapterEvent, ChatMessage, StatusEvent
from .store import MessageStore

__all__ = [
    "AdapterEvent",
    "AdapterSupervisor",
    "BroadcastHub",
    "ChatMessage",
    "MessageStore",
    "StatusEvent",
]
