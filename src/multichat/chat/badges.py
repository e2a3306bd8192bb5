"""Badge catalogs and badge resolution with tier fallback.

A :class:`BadgeCatalog` has two layers. The *channel* layer holds custom
badges (Twitch channel subscriber and bits badges) and wins over the
*global* layer for the same badge id. Within a badge id, versions map to
renderable :class:`ChatBadge` entries; numeric versions are tiers
(subscription months or cheer thresholds).
"""

import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

import aiohttp

from ..core.models import Platform
from .models import BadgeResolution, ChatBadge, ChatMessage

logger = logging.getLogger(__name__)

HELIX_GLOBAL_BADGES_URL = "https://api.twitch.tv/helix/chat/badges/global"
HELIX_CHANNEL_BADGES_URL = "https://api.twitch.tv/helix/chat/badges"
HELIX_USERS_URL = "https://api.twitch.tv/helix/users"
PUBLIC_GLOBAL_BADGES_URL = "https://badges.twitch.tv/v1/badges/global/display"

GLOBAL_LAYER = "global"
CHANNEL_LAYER = "channel"

SUBSCRIPTION_BADGES: dict[Platform, frozenset[str]] = {
    Platform.TWITCH: frozenset({"subscriber", "founder"}),
    Platform.YOUTUBE: frozenset({"member"}),
    Platform.TIKTOK: frozenset({"subscriber"}),
}


def is_subscription_badge(platform: Platform, badge_id: str) -> bool:
    return badge_id.lower() in SUBSCRIPTION_BADGES.get(platform, frozenset())


def is_cheer_badge(platform: Platform, badge_id: str) -> bool:
    badge_id = badge_id.lower()
    return platform == Platform.TWITCH and (badge_id == "bits" or badge_id.startswith("cheer"))


def _tier(version: str) -> int | None:
    try:
        return int(version)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class BadgeEntry:
    """One catalog row: a badge version in a layer."""

    platform: Platform
    badge_id: str
    version: str
    title: str
    image_url: str
    layer: str = GLOBAL_LAYER


class BadgeCatalog:
    """Read-only badge lookup keyed by (platform, badge id, version)."""

    def __init__(self, entries: Iterable[BadgeEntry] = ()):
        layers: dict[str, dict[tuple[Platform, str], dict[str, ChatBadge]]] = {
            GLOBAL_LAYER: {},
            CHANNEL_LAYER: {},
        }
        self._entries: list[BadgeEntry] = []
        for entry in entries:
            if entry.layer not in layers:
                raise ValueError(f"Unknown badge layer: {entry.layer}")
            badge_id = entry.badge_id.strip().lower()
            version = str(entry.version).strip()
            if not badge_id or not version:
                continue
            versions = layers[entry.layer].setdefault((entry.platform, badge_id), {})
            versions[version] = ChatBadge(
                id=badge_id,
                title=entry.title or badge_id,
                image_url=entry.image_url,
                tier=_tier(version),
            )
            self._entries.append(entry)

        self._layers = {
            name: MappingProxyType({key: MappingProxyType(v) for key, v in layer.items()})
            for name, layer in layers.items()
        }

    def versions(self, platform: Platform, badge_id: str) -> Mapping[str, ChatBadge]:
        """Versions of a badge, channel layer first. Empty if unknown."""
        key = (platform, badge_id.strip().lower())
        for layer in (CHANNEL_LAYER, GLOBAL_LAYER):
            versions = self._layers[layer].get(key)
            if versions:
                return versions
        return MappingProxyType({})

    def entries(self) -> Iterator[BadgeEntry]:
        return iter(self._entries)

    def merged(self, other: "BadgeCatalog") -> "BadgeCatalog":
        """New catalog with ``other``'s entries overriding this one's."""
        return BadgeCatalog([*self._entries, *other.entries()])

    def __len__(self) -> int:
        return len(self._entries)

    # Serialization

    def to_dict(self) -> dict[str, Any]:
        """``{layer: {platform: {badge_id: {version: {title, image_url}}}}}``"""
        data: dict[str, Any] = {GLOBAL_LAYER: {}, CHANNEL_LAYER: {}}
        for layer, badges in self._layers.items():
            for (platform, badge_id), versions in badges.items():
                platform_data = data[layer].setdefault(platform.value, {})
                platform_data[badge_id] = {
                    version: {"title": badge.title, "image_url": badge.image_url}
                    for version, badge in versions.items()
                }
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BadgeCatalog":
        """Build a catalog from :meth:`to_dict` output. Unknown platforms are skipped."""
        entries: list[BadgeEntry] = []
        for layer in (GLOBAL_LAYER, CHANNEL_LAYER):
            for platform_name, badges in (data.get(layer) or {}).items():
                try:
                    platform = Platform(platform_name)
                except ValueError:
                    logger.warning(f"Skipping badges for unknown platform: {platform_name}")
                    continue
                for badge_id, versions in badges.items():
                    for version, info in versions.items():
                        entries.append(
                            BadgeEntry(
                                platform=platform,
                                badge_id=badge_id,
                                version=str(version),
                                title=info.get("title", ""),
                                image_url=info.get("image_url", ""),
                                layer=layer,
                            )
                        )
        return cls(entries)

    @classmethod
    def from_helix(
        cls,
        global_data: Mapping[str, Any] | None,
        channel_data: Mapping[str, Any] | None = None,
        platform: Platform = Platform.TWITCH,
    ) -> "BadgeCatalog":
        """Build a catalog from Twitch Helix ``chat/badges`` responses."""
        entries: list[BadgeEntry] = []
        for layer, data in ((GLOBAL_LAYER, global_data), (CHANNEL_LAYER, channel_data)):
            if not data:
                continue
            for badge_set in data.get("data", []):
                set_id = badge_set.get("set_id", "")
                for version in badge_set.get("versions", []):
                    vid = version.get("id", "")
                    url = version.get("image_url_2x") or version.get("image_url_1x") or ""
                    if set_id and vid and url:
                        entries.append(
                            BadgeEntry(
                                platform=platform,
                                badge_id=set_id,
                                version=vid,
                                title=version.get("title", ""),
                                image_url=url,
                                layer=layer,
                            )
                        )
        return cls(entries)


# Resolution


def _nearest_tier(tiers: Mapping[int, ChatBadge], value: int) -> ChatBadge | None:
    """Badge of the highest tier not exceeding ``value``."""
    eligible = [tier for tier in tiers if tier <= value]
    if not eligible:
        return None
    return tiers[max(eligible)]


def _lowest(versions: Mapping[str, ChatBadge]) -> ChatBadge | None:
    if not versions:
        return None
    tiers = {badge.tier: badge for badge in versions.values() if badge.tier is not None}
    if tiers:
        return tiers[min(tiers)]
    return versions[sorted(versions)[0]]


def resolve_badge(
    catalog: BadgeCatalog | None,
    platform: Platform | str,
    badge_id: str,
    months: int | None = None,
    bits: int | None = None,
    version: str | None = None,
) -> BadgeResolution:
    """Resolve one badge identifier to a renderable badge.

    Subscription badges pick the exact month tier, else the highest tier not
    exceeding ``months``, else the lowest tier. Unknown or non-positive months
    count as 1. Cheer badges pick the highest threshold not exceeding ``bits``
    (the lowest when bits are unknown). Other badges use ``version`` when the
    catalog has it, then version 1, then the lowest version.

    Never raises; unknown input gives an unresolved result.
    """
    result = BadgeResolution(badge_id=badge_id)
    if catalog is None or not badge_id or not str(badge_id).strip():
        return result
    try:
        platform = Platform(platform)
    except ValueError:
        return result

    versions = catalog.versions(platform, str(badge_id))
    if not versions:
        return result

    tiers = {badge.tier: badge for badge in versions.values() if badge.tier is not None}

    if is_subscription_badge(platform, badge_id):
        wanted = months if months is not None and months > 0 else 1
        badge = tiers.get(wanted) or _nearest_tier(tiers, wanted) or _lowest(versions)
    elif is_cheer_badge(platform, badge_id):
        badge = None
        if bits is not None and bits > 0:
            badge = _nearest_tier(tiers, bits)
        badge = badge or _lowest(versions)
    else:
        badge = versions.get(str(version)) if version is not None else None
        badge = badge or versions.get("1") or _lowest(versions)

    return BadgeResolution(badge_id=badge_id, badge=badge)


def _raw_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _message_months(raw: Mapping[str, Any]) -> int | None:
    months = _raw_int(raw.get("subscriptionMonths"))
    if months is None:
        months = _raw_int((raw.get("badge_versions") or {}).get("subscriber"))
    if months is None and isinstance(raw.get("badges"), Mapping):
        months = _raw_int(raw["badges"].get("subscriber"))
    return months


def _message_bits(raw: Mapping[str, Any]) -> int | None:
    bits = _raw_int(raw.get("cheerAmount"))
    if bits is None:
        bits = _raw_int((raw.get("badge_versions") or {}).get("bits"))
    return bits


def resolve_message_badges(
    catalog: BadgeCatalog | None, message: ChatMessage
) -> list[BadgeResolution]:
    """Resolve every badge of a message, in order, using its platform context."""
    raw = message.raw
    months = _message_months(raw)
    bits = _message_bits(raw)
    badge_versions = raw.get("badge_versions") or {}

    resolutions = []
    for badge_id in message.badges:
        resolution = resolve_badge(
            catalog,
            message.platform,
            badge_id,
            months=months,
            bits=bits,
            version=badge_versions.get(badge_id),
        )
        # YouTube sends the member badge image with each message
        if (
            not resolution.resolved
            and message.platform == Platform.YOUTUBE
            and badge_id == "member"
            and raw.get("badge_url")
        ):
            resolution = BadgeResolution(
                badge_id=badge_id,
                badge=ChatBadge(id="member", title="Member", image_url=raw["badge_url"]),
            )
        resolutions.append(resolution)
    return resolutions


# Loaders


def load_badge_catalog(path: str | Path) -> BadgeCatalog:
    """Load a catalog from a JSON file. Errors give an empty catalog."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            catalog = BadgeCatalog.from_dict(json.load(f))
    except FileNotFoundError:
        logger.warning(f"Badge file not found: {path}")
        return BadgeCatalog()
    except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
        logger.warning(f"Ignoring unreadable badge file {path}: {e}")
        return BadgeCatalog()
    logger.info(f"Loaded {len(catalog)} badges from {path}")
    return catalog


async def fetch_twitch_badges(
    client_id: str = "",
    oauth_token: str = "",
    channel_login: str = "",
) -> BadgeCatalog:
    """Fetch Twitch global and channel badges.

    Tries the authenticated Helix API first, falls back to the public badge
    API for global badges.
    """
    catalog = BadgeCatalog()
    oauth_token = oauth_token.removeprefix("oauth:")

    if oauth_token and client_id:
        headers = {
            "Authorization": f"Bearer {oauth_token}",
            "Client-Id": client_id,
        }
        try:
            async with aiohttp.ClientSession(headers=headers) as session:
                global_data = await _get_json(session, HELIX_GLOBAL_BADGES_URL)
                if global_data is None:
                    logger.warning("Helix global badges unavailable, trying public API")

                channel_data = None
                if channel_login:
                    broadcaster_id = await _resolve_broadcaster_id(session, channel_login)
                    if broadcaster_id:
                        channel_data = await _get_json(
                            session,
                            HELIX_CHANNEL_BADGES_URL,
                            params={"broadcaster_id": broadcaster_id},
                        )
                catalog = BadgeCatalog.from_helix(global_data, channel_data)
        except (aiohttp.ClientError, OSError, TimeoutError) as e:
            logger.warning(f"Failed to fetch Twitch badges via Helix: {e}")

    if not any(entry.layer == GLOBAL_LAYER for entry in catalog.entries()):
        catalog = (await _fetch_public_twitch_badges()).merged(catalog)

    logger.debug(f"Fetched {len(catalog)} Twitch badges")
    return catalog


async def _get_json(
    session: aiohttp.ClientSession, url: str, params: dict | None = None
) -> dict | None:
    async with session.get(url, params=params, timeout=aiohttp.ClientTimeout(total=15)) as resp:
        if resp.status != 200:
            logger.warning(f"{url} returned {resp.status}")
            return None
        return await resp.json()


async def _resolve_broadcaster_id(session: aiohttp.ClientSession, login: str) -> str:
    data = await _get_json(session, HELIX_USERS_URL, params={"login": login.lstrip("#").lower()})
    users = (data or {}).get("data", [])
    return users[0].get("id", "") if users else ""


async def _fetch_public_twitch_badges() -> BadgeCatalog:
    """Fetch Twitch global badges from the public (unauthenticated) badge API."""
    entries: list[BadgeEntry] = []
    try:
        async with aiohttp.ClientSession() as session:
            data = await _get_json(session, PUBLIC_GLOBAL_BADGES_URL)
            for set_id, set_data in ((data or {}).get("badge_sets") or {}).items():
                for vid, version_data in (set_data.get("versions") or {}).items():
                    url = version_data.get("image_url_2x") or version_data.get("image_url_1x") or ""
                    if url:
                        entries.append(
                            BadgeEntry(
                                platform=Platform.TWITCH,
                                badge_id=set_id,
                                version=vid,
                                title=version_data.get("title", ""),
                                image_url=url,
                            )
                        )
    except (aiohttp.ClientError, OSError, TimeoutError) as e:
        logger.warning(f"Failed to fetch Twitch badges from public API: {e}")
    return BadgeCatalog(entries)
