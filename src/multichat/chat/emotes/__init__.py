"""Emote providers and resolution."""

from .catalog import EmoteCatalog, load_emote_catalog, reconstruct, resolve_emotes
from .provider import BTTVProvider, FFZProvider, SevenTVProvider, TwitchProvider

__all__ = [
    "BTTVProvider",
    "EmoteCatalog",
    "FFZProvider",
    "SevenTVProvider",
    "TwitchProvider",
    "load_emote_catalog",
    "reconstruct",
    "resolve_emotes",
]
