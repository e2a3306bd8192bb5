"""Emote catalog loading and whole-token emote substitution."""

import asyncio
import json
import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from ..models import ChatEmote, EmoteSegment, TextSegment
from .provider import BaseEmoteProvider, create_provider

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"(\s+)")

Segment = TextSegment | EmoteSegment


class EmoteCatalog:
    """Read-only emote lookup by exact, case-sensitive name.

    When two sources define the same name, the later one wins.
    """

    def __init__(self, emotes: Iterable[ChatEmote] = ()):
        by_name: dict[str, ChatEmote] = {}
        for emote in emotes:
            if emote.name:
                by_name[emote.name] = emote
        self._emotes = MappingProxyType(by_name)

    def get(self, name: str) -> ChatEmote | None:
        return self._emotes.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._emotes

    def __len__(self) -> int:
        return len(self._emotes)

    def __iter__(self) -> Iterator[ChatEmote]:
        return iter(self._emotes.values())

    def merged(self, other: "EmoteCatalog") -> "EmoteCatalog":
        return EmoteCatalog([*self, *other])

    def to_dict(self) -> dict[str, Any]:
        return {
            "emotes": [
                {"id": e.id, "name": e.name, "url": e.url, "provider": e.provider} for e in self
            ]
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | list) -> "EmoteCatalog":
        """Build from :meth:`to_dict` output or a bare list of emote objects."""
        items = data.get("emotes", []) if isinstance(data, Mapping) else data
        emotes = []
        for item in items:
            name = item.get("name", "")
            if not name:
                continue
            emotes.append(
                ChatEmote(
                    id=str(item.get("id") or name),
                    name=name,
                    url=item.get("url", ""),
                    provider=item.get("provider", "file"),
                )
            )
        return cls(emotes)


def resolve_emotes(text: str, catalog: EmoteCatalog | None) -> Iterator[Segment]:
    """Split message text into text and emote segments, in order.

    Tokens are whitespace-delimited and only a whole token equal to an emote
    name is replaced. Whitespace is kept and adjacent text is merged into one
    segment. Empty text gives no segments.
    """
    if not text:
        return
    if catalog is None or len(catalog) == 0:
        yield TextSegment(text)
        return

    pending: list[str] = []
    for part in _WHITESPACE_RE.split(text):
        if not part:
            continue
        emote = None if part.isspace() else catalog.get(part)
        if emote is None:
            pending.append(part)
            continue
        if pending:
            yield TextSegment("".join(pending))
            pending = []
        yield EmoteSegment(emote)

    if pending:
        yield TextSegment("".join(pending))


def reconstruct(segments: Iterable[Segment]) -> str:
    """Join segments back into the original text."""
    return "".join(segment.text for segment in segments)


def load_emote_file(path: str | Path) -> EmoteCatalog:
    """Load emotes from a JSON file. Errors give an empty catalog."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            catalog = EmoteCatalog.from_dict(json.load(f))
    except FileNotFoundError:
        logger.warning(f"Emote file not found: {path}")
        return EmoteCatalog()
    except (json.JSONDecodeError, AttributeError, TypeError) as e:
        logger.warning(f"Ignoring unreadable emote file {path}: {e}")
        return EmoteCatalog()
    logger.info(f"Loaded {len(catalog)} emotes from {path}")
    return catalog


async def load_emote_catalog(
    providers: Iterable[str | BaseEmoteProvider] = (),
    path: str | Path | None = None,
    oauth_token: str = "",
    client_id: str = "",
) -> EmoteCatalog:
    """Gather global emotes from providers, then the optional file.

    A failing or unknown provider is logged and skipped.
    """
    instances: list[BaseEmoteProvider] = []
    for provider in providers:
        if isinstance(provider, BaseEmoteProvider):
            instances.append(provider)
            continue
        try:
            instances.append(
                create_provider(provider, oauth_token=oauth_token, client_id=client_id)
            )
        except ValueError as e:
            logger.warning(str(e))

    results = await asyncio.gather(
        *(provider.get_global_emotes() for provider in instances), return_exceptions=True
    )

    emotes: list[ChatEmote] = []
    for provider, result in zip(instances, results):
        if isinstance(result, BaseException):
            logger.warning(f"Failed to fetch global emotes from {provider.name}: {result}")
            continue
        logger.debug(f"Fetched {len(result)} global emotes from {provider.name}")
        emotes.extend(result)

    catalog = EmoteCatalog(emotes)
    if path:
        catalog = catalog.merged(load_emote_file(path))
    logger.info(f"Emote catalog ready: {len(catalog)} emotes")
    return catalog
