"""Tests for emote catalogs, providers, and whole-token substitution."""

import json

import pytest

from multichat.chat.emotes.catalog import (
    EmoteCatalog,
    load_emote_catalog,
    load_emote_file,
    reconstruct,
    resolve_emotes,
)
from multichat.chat.emotes.provider import (
    BaseEmoteProvider,
    BTTVProvider,
    FFZProvider,
    SevenTVProvider,
    TwitchProvider,
    create_provider,
)
from multichat.chat.models import ChatEmote, EmoteSegment, TextSegment

# --- resolve_emotes ---


def test_resolve_emotes_example(emote_catalog):
    segments = list(resolve_emotes("GG PogChamp everyone", emote_catalog))
    assert segments == [
        TextSegment("GG "),
        EmoteSegment(emote_catalog.get("PogChamp")),
        TextSegment(" everyone"),
    ]


def test_resolve_emotes_without_catalog():
    assert list(resolve_emotes("GG PogChamp everyone", None)) == [
        TextSegment("GG PogChamp everyone")
    ]
    assert list(resolve_emotes("Kappa", EmoteCatalog())) == [TextSegment("Kappa")]


def test_resolve_emotes_is_case_sensitive(emote_catalog):
    assert list(resolve_emotes("pogchamp POGCHAMP", emote_catalog)) == [
        TextSegment("pogchamp POGCHAMP")
    ]


def test_resolve_emotes_whole_tokens_only(emote_catalog):
    assert list(resolve_emotes("KappaPride xKappa Kappa,", emote_catalog)) == [
        TextSegment("KappaPride xKappa Kappa,")
    ]


def test_resolve_emotes_adjacent_emotes(emote_catalog):
    segments = list(resolve_emotes("Kappa KEKW", emote_catalog))
    assert [type(s) for s in segments] == [EmoteSegment, TextSegment, EmoteSegment]
    assert segments[1] == TextSegment(" ")


def test_resolve_emotes_only_emote(emote_catalog):
    assert list(resolve_emotes("KEKW", emote_catalog)) == [
        EmoteSegment(emote_catalog.get("KEKW"))
    ]


def test_resolve_emotes_empty_text(emote_catalog):
    assert list(resolve_emotes("", emote_catalog)) == []


@pytest.mark.parametrize(
    "text",
    [
        "GG PogChamp everyone",
        "  Kappa\t\tKEKW  ",
        "no emotes here",
        "Kappa\nnew line Kappa",
    ],
)
def test_reconstruct_preserves_text(emote_catalog, text):
    assert reconstruct(resolve_emotes(text, emote_catalog)) == text


# --- catalog ---


def test_later_source_wins():
    first = ChatEmote(id="1", name="Pog", url="https://a", provider="bttv")
    second = ChatEmote(id="2", name="Pog", url="https://b", provider="7tv")
    catalog = EmoteCatalog([first, second])
    assert len(catalog) == 1
    assert catalog.get("Pog") is second
    assert "Pog" in catalog


def test_catalog_dict_round_trip(emote_catalog):
    restored = EmoteCatalog.from_dict(json.loads(json.dumps(emote_catalog.to_dict())))
    assert sorted(e.name for e in restored) == sorted(e.name for e in emote_catalog)
    assert restored.get("Kappa") == emote_catalog.get("Kappa")


def test_from_dict_accepts_bare_list():
    catalog = EmoteCatalog.from_dict([{"name": "Wave", "url": "https://x/wave"}])
    emote = catalog.get("Wave")
    assert emote.id == "Wave"
    assert emote.provider == "file"


def test_load_emote_file(tmp_path, emote_catalog):
    path = tmp_path / "emotes.json"
    path.write_text(json.dumps(emote_catalog.to_dict()))
    assert len(load_emote_file(path)) == 3
    assert len(load_emote_file(tmp_path / "missing.json")) == 0


# --- providers ---


def test_create_provider():
    assert isinstance(create_provider("twitch"), TwitchProvider)
    assert isinstance(create_provider("7TV"), SevenTVProvider)
    assert isinstance(create_provider(" bttv "), BTTVProvider)
    assert isinstance(create_provider("ffz"), FFZProvider)
    with pytest.raises(ValueError):
        create_provider("myspace")


def test_twitch_provider_headers():
    provider = TwitchProvider(oauth_token="oauth:abc", client_id="cid")
    assert provider._headers() == {"Client-Id": "cid", "Authorization": "Bearer abc"}


def test_parse_7tv_emote():
    emote = SevenTVProvider()._parse_emote(
        {
            "id": "60ae",
            "name": "KEKW",
            "data": {"id": "60ae", "host": {"url": "//cdn.7tv.app/emote/60ae"}},
        }
    )
    assert emote.url == "https://cdn.7tv.app/emote/60ae/2x.webp"
    assert emote.provider == "7tv"


def test_parse_bttv_emote():
    emote = BTTVProvider()._parse_emote({"id": "54fa", "code": "FeelsBadMan"})
    assert emote.name == "FeelsBadMan"
    assert emote.url == "https://cdn.betterttv.net/emote/54fa/2x"


def test_parse_ffz_emote():
    provider = FFZProvider()
    assert provider._parse_emote({"id": 1, "name": "ZreknarF", "urls": {"1": "//cdn/1"}}).url == (
        "https://cdn/1"
    )
    assert provider._parse_emote({"id": 2, "name": "NoUrl", "urls": {}}) is None


def test_parse_twitch_emote_fallback_url():
    emote = TwitchProvider()._parse_emote({"id": "25", "name": "Kappa"})
    assert emote.url == "https://static-cdn.jtvnw.net/emoticons/v2/25/static/light/2.0"


class _StaticProvider(BaseEmoteProvider):
    def __init__(self, name, emotes=(), error=None):
        self._name = name
        self._emotes = list(emotes)
        self._error = error

    @property
    def name(self):
        return self._name

    async def get_global_emotes(self):
        if self._error:
            raise self._error
        return self._emotes

    def _parse_emote(self, data):
        return None


async def test_load_emote_catalog_skips_failing_provider(tmp_path):
    kappa = ChatEmote(id="25", name="Kappa", url="https://x/kappa", provider="twitch")
    path = tmp_path / "emotes.json"
    path.write_text(json.dumps({"emotes": [{"name": "Custom", "url": "https://x/custom"}]}))

    catalog = await load_emote_catalog(
        [
            _StaticProvider("good", [kappa]),
            _StaticProvider("broken", error=OSError("network down")),
            "not-a-provider",
        ],
        path=path,
    )
    assert sorted(e.name for e in catalog) == ["Custom", "Kappa"]
