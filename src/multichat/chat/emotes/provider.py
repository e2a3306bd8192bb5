"""Global emote providers for Twitch, 7TV, BTTV, and FFZ."""

import logging
from abc import ABC, abstractmethod
from typing import Any

import aiohttp

from ..models import ChatEmote

logger = logging.getLogger(__name__)

# Default Twitch client ID for unauthenticated requests
_DEFAULT_TWITCH_CLIENT_ID = "kimne78kx3ncx6brgo4mv6wki5h1ko"

REQUEST_TIMEOUT = 15  # seconds


class BaseEmoteProvider(ABC):
    """Base class for emote providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""

    @abstractmethod
    async def get_global_emotes(self) -> list[ChatEmote]:
        """Fetch global emotes for this provider."""

    def _headers(self) -> dict[str, str]:
        return {}

    async def _fetch_json(self, url: str) -> Any:
        """GET ``url`` and decode JSON. Returns None on a non-200 response."""
        async with aiohttp.ClientSession(headers=self._headers()) as session:
            async with session.get(
                url, timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
            ) as resp:
                if resp.status != 200:
                    logger.debug(f"{self.name} emotes request failed: {resp.status}")
                    return None
                return await resp.json()

    def _parse_all(self, items) -> list[ChatEmote]:
        emotes: list[ChatEmote] = []
        for emote_data in items or []:
            emote = self._parse_emote(emote_data)
            if emote:
                emotes.append(emote)
        return emotes

    @abstractmethod
    def _parse_emote(self, data: dict) -> ChatEmote | None:
        """Parse one emote from API data."""


class TwitchProvider(BaseEmoteProvider):
    """Native Twitch emote provider using Helix API."""

    BASE_URL = "https://api.twitch.tv/helix"

    def __init__(self, oauth_token: str = "", client_id: str = ""):
        self.oauth_token = oauth_token.removeprefix("oauth:")
        self.client_id = client_id or _DEFAULT_TWITCH_CLIENT_ID

    @property
    def name(self) -> str:
        return "twitch"

    def _headers(self) -> dict[str, str]:
        headers = {"Client-Id": self.client_id}
        if self.oauth_token:
            headers["Authorization"] = f"Bearer {self.oauth_token}"
        return headers

    async def get_global_emotes(self) -> list[ChatEmote]:
        data = await self._fetch_json(f"{self.BASE_URL}/chat/emotes/global")
        return self._parse_all((data or {}).get("data"))

    def _parse_emote(self, data: dict) -> ChatEmote | None:
        emote_id = data.get("id", "")
        name = data.get("name", "")
        if not emote_id or not name:
            return None

        images = data.get("images", {})
        url = images.get("url_2x") or images.get("url_1x", "")
        if not url:
            url = f"https://static-cdn.jtvnw.net/emoticons/v2/{emote_id}/static/light/2.0"

        return ChatEmote(id=emote_id, name=name, url=url, provider="twitch")


class SevenTVProvider(BaseEmoteProvider):
    """7TV emote provider."""

    BASE_URL = "https://7tv.io/v3"

    @property
    def name(self) -> str:
        return "7tv"

    async def get_global_emotes(self) -> list[ChatEmote]:
        data = await self._fetch_json(f"{self.BASE_URL}/emote-sets/global")
        return self._parse_all((data or {}).get("emotes"))

    def _parse_emote(self, data: dict) -> ChatEmote | None:
        emote_data = data.get("data", data)
        emote_id = emote_data.get("id", data.get("id", ""))
        name = data.get("name", emote_data.get("name", ""))
        if not emote_id or not name:
            return None

        host = emote_data.get("host", {})
        base_url = host.get("url", f"//cdn.7tv.app/emote/{emote_id}")
        if base_url.startswith("//"):
            base_url = "https:" + base_url

        return ChatEmote(id=emote_id, name=name, url=f"{base_url}/2x.webp", provider="7tv")


class BTTVProvider(BaseEmoteProvider):
    """BetterTTV emote provider."""

    BASE_URL = "https://api.betterttv.net/3"

    @property
    def name(self) -> str:
        return "bttv"

    async def get_global_emotes(self) -> list[ChatEmote]:
        data = await self._fetch_json(f"{self.BASE_URL}/cached/emotes/global")
        return self._parse_all(data if isinstance(data, list) else [])

    def _parse_emote(self, data: dict) -> ChatEmote | None:
        emote_id = data.get("id", "")
        code = data.get("code", "")
        if not emote_id or not code:
            return None
        return ChatEmote(
            id=emote_id,
            name=code,
            url=f"https://cdn.betterttv.net/emote/{emote_id}/2x",
            provider="bttv",
        )


class FFZProvider(BaseEmoteProvider):
    """FrankerFaceZ emote provider."""

    BASE_URL = "https://api.frankerfacez.com/v1"

    @property
    def name(self) -> str:
        return "ffz"

    async def get_global_emotes(self) -> list[ChatEmote]:
        data = await self._fetch_json(f"{self.BASE_URL}/set/global") or {}
        emotes: list[ChatEmote] = []
        for set_id in data.get("default_sets", []):
            emote_set = data.get("sets", {}).get(str(set_id), {})
            emotes.extend(self._parse_all(emote_set.get("emoticons")))
        return emotes

    def _parse_emote(self, data: dict) -> ChatEmote | None:
        emote_id = str(data.get("id", ""))
        name = data.get("name", "")
        if not emote_id or not name:
            return None

        # Pick best available size
        urls = data.get("urls", {})
        url = urls.get("2") or urls.get("1") or ""
        if url.startswith("//"):
            url = "https:" + url
        if not url:
            return None

        return ChatEmote(id=emote_id, name=name, url=url, provider="ffz")


def create_provider(name: str, oauth_token: str = "", client_id: str = "") -> BaseEmoteProvider:
    """Build a provider by name.

    Raises:
        ValueError: Unknown provider name.
    """
    name = name.strip().lower()
    if name == "twitch":
        return TwitchProvider(oauth_token=oauth_token, client_id=client_id)
    if name == "7tv":
        return SevenTVProvider()
    if name == "bttv":
        return BTTVProvider()
    if name == "ffz":
        return FFZProvider()
    raise ValueError(f"Unknown emote provider: {name}")
