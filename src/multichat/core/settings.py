"""Settings management for Multichat.

Settings come from two layers: an optional ``settings.json`` in the user config
directory, then environment variables (optionally read from a ``.env`` file).
Environment values win.
"""

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from appdirs import user_config_dir
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

APP_NAME = "multichat"
APP_AUTHOR = "multichat"

DEFAULT_PORT = 8787
DEFAULT_EMOTE_PROVIDERS = ["twitch", "7tv", "bttv", "ffz"]

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigError(ValueError):
    """Raised for startup misconfiguration that must abort the process."""


def get_config_dir() -> Path:
    """Get the configuration directory."""
    return Path(user_config_dir(APP_NAME, APP_AUTHOR))


@dataclass
class ServerSettings:
    """Hub process settings."""

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    debug: bool = False
    history_size: int = 200
    replay_history: bool = False  # send recent history to late joiners
    shutdown_timeout: float = 5.0
    max_reconnect_attempts: int = 10  # 0 = unlimited
    fake_messages: bool = False
    fake_message_interval: float = 2.0


@dataclass
class TwitchSettings:
    """Twitch chat settings."""

    channels: list[str] = field(default_factory=list)
    username: str = ""
    oauth_token: str = ""  # empty = anonymous read-only login
    client_id: str = ""  # used for Helix badge/emote catalogs

    @property
    def is_configured(self) -> bool:
        return bool(self.channels)


@dataclass
class YouTubeSettings:
    """YouTube chat settings."""

    channel_id: str = ""
    video_id: str = ""  # skips live video lookup when set
    retry_when_offline: bool = True

    @property
    def is_configured(self) -> bool:
        return bool(self.channel_id or self.video_id)


@dataclass
class TikTokSettings:
    """TikTok LIVE chat settings."""

    unique_id: str = ""
    retry_when_offline: bool = True

    @property
    def is_configured(self) -> bool:
        return bool(self.unique_id)


@dataclass
class CatalogSettings:
    """Badge and emote catalog sources."""

    badges_file: str = ""
    emotes_file: str = ""
    emote_providers: list[str] = field(default_factory=lambda: list(DEFAULT_EMOTE_PROVIDERS))


@dataclass
class ViewerSettings:
    """Settings for the terminal viewer."""

    url: str = f"ws://localhost:{DEFAULT_PORT}/ws"
    capacity: int = 200
    auto_expire: bool = True  # public overlay mode
    expire_after: float = 30.0
    fade_duration: float = 0.3


@dataclass
class Settings:
    """Application settings."""

    server: ServerSettings = field(default_factory=ServerSettings)
    twitch: TwitchSettings = field(default_factory=TwitchSettings)
    youtube: YouTubeSettings = field(default_factory=YouTubeSettings)
    tiktok: TikTokSettings = field(default_factory=TikTokSettings)
    catalogs: CatalogSettings = field(default_factory=CatalogSettings)
    viewer: ViewerSettings = field(default_factory=ViewerSettings)

    @classmethod
    def load(
        cls,
        environ: Mapping[str, str] | None = None,
        path: Path | None = None,
        env_file: str | None = None,
    ) -> "Settings":
        """Load settings from the JSON file and the environment.

        Args:
            environ: Environment mapping. Defaults to ``os.environ`` after
                loading ``env_file`` (or ``./.env``) with python-dotenv.
            path: Settings file. Defaults to ``<config dir>/settings.json``.
            env_file: Optional ``.env`` path, only used when ``environ`` is None.

        Raises:
            ConfigError: A numeric environment value could not be parsed.
        """
        if path is None:
            path = get_config_dir() / "settings.json"

        settings = cls()
        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    settings = cls._from_dict(json.load(f))
                logger.info(f"Loaded settings from {path}")
            except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Ignoring unreadable settings file {path}: {e}")
                settings = cls()

        if environ is None:
            load_dotenv(env_file)
            environ = os.environ

        settings._apply_env(environ)
        return settings

    @staticmethod
    def _validate_int(value, default: int, min_val: int = 0, max_val: int | None = None) -> int:
        """Validate and constrain an integer value."""
        if not isinstance(value, int) or isinstance(value, bool):
            return default
        if value < min_val:
            return min_val
        if max_val is not None and value > max_val:
            return max_val
        return value

    @staticmethod
    def _validate_float(value, default: float, min_val: float = 0.0) -> float:
        """Validate and constrain a float value."""
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return default
        return max(float(value), min_val)

    @classmethod
    def _from_dict(cls, data: dict) -> "Settings":
        """Create Settings from a dictionary with validation."""
        settings = cls()

        s = data.get("server", {})
        settings.server = ServerSettings(
            host=s.get("host", "0.0.0.0"),
            port=cls._validate_int(s.get("port"), DEFAULT_PORT, min_val=1, max_val=65535),
            debug=bool(s.get("debug", False)),
            history_size=cls._validate_int(s.get("history_size"), 200, min_val=0, max_val=10000),
            replay_history=bool(s.get("replay_history", False)),
            shutdown_timeout=cls._validate_float(s.get("shutdown_timeout"), 5.0, min_val=0.1),
            max_reconnect_attempts=cls._validate_int(s.get("max_reconnect_attempts"), 10),
            fake_messages=bool(s.get("fake_messages", False)),
            fake_message_interval=cls._validate_float(
                s.get("fake_message_interval"), 2.0, min_val=0.1
            ),
        )

        t = data.get("twitch", {})
        settings.twitch = TwitchSettings(
            channels=list(t.get("channels", [])),
            username=t.get("username", ""),
            oauth_token=t.get("oauth_token", ""),
            client_id=t.get("client_id", ""),
        )

        y = data.get("youtube", {})
        settings.youtube = YouTubeSettings(
            channel_id=y.get("channel_id", ""),
            video_id=y.get("video_id", ""),
            retry_when_offline=bool(y.get("retry_when_offline", True)),
        )

        k = data.get("tiktok", {})
        settings.tiktok = TikTokSettings(
            unique_id=k.get("unique_id", ""),
            retry_when_offline=bool(k.get("retry_when_offline", True)),
        )

        c = data.get("catalogs", {})
        settings.catalogs = CatalogSettings(
            badges_file=c.get("badges_file", ""),
            emotes_file=c.get("emotes_file", ""),
            emote_providers=list(c.get("emote_providers", DEFAULT_EMOTE_PROVIDERS)),
        )

        v = data.get("viewer", {})
        settings.viewer = ViewerSettings(
            url=v.get("url", f"ws://localhost:{DEFAULT_PORT}/ws"),
            capacity=cls._validate_int(v.get("capacity"), 200, min_val=1, max_val=10000),
            auto_expire=bool(v.get("auto_expire", True)),
            expire_after=cls._validate_float(v.get("expire_after"), 30.0, min_val=1.0),
            fade_duration=cls._validate_float(v.get("fade_duration"), 0.3),
        )

        return settings

    def _apply_env(self, env: Mapping[str, str]) -> None:
        """Overlay environment variables onto these settings."""
        server = self.server
        server.host = env.get("HOST", server.host)
        server.port = _env_int(env, "PORT", server.port, min_val=1, max_val=65535)
        server.debug = _env_bool(env, "DEBUG", server.debug)
        server.history_size = _env_int(env, "HISTORY_SIZE", server.history_size)
        server.replay_history = _env_bool(env, "REPLAY_HISTORY", server.replay_history)
        server.shutdown_timeout = _env_float(env, "SHUTDOWN_TIMEOUT", server.shutdown_timeout)
        server.max_reconnect_attempts = _env_int(
            env, "MAX_RECONNECT_ATTEMPTS", server.max_reconnect_attempts
        )
        server.fake_messages = _env_bool(env, "FAKE_MESSAGES", server.fake_messages)
        server.fake_message_interval = _env_float(
            env, "FAKE_MESSAGE_INTERVAL", server.fake_message_interval, min_val=0.1
        )

        if env.get("TWITCH_CHANNELS"):
            self.twitch.channels = _split_list(env["TWITCH_CHANNELS"])
        self.twitch.username = env.get("TWITCH_USERNAME", self.twitch.username)
        self.twitch.oauth_token = env.get("TWITCH_OAUTH", self.twitch.oauth_token)
        self.twitch.client_id = env.get("TWITCH_CLIENT_ID", self.twitch.client_id)

        self.youtube.channel_id = env.get("YT_CHANNEL_ID", self.youtube.channel_id)
        self.youtube.video_id = env.get("YT_VIDEO_ID", self.youtube.video_id)
        self.youtube.retry_when_offline = _env_bool(
            env, "YT_RETRY_WHEN_OFFLINE", self.youtube.retry_when_offline
        )

        self.tiktok.unique_id = env.get("TIKTOK_USERNAME", self.tiktok.unique_id)
        self.tiktok.retry_when_offline = _env_bool(
            env, "TIKTOK_RETRY_WHEN_OFFLINE", self.tiktok.retry_when_offline
        )

        self.catalogs.badges_file = env.get("BADGES_FILE", self.catalogs.badges_file)
        self.catalogs.emotes_file = env.get("EMOTES_FILE", self.catalogs.emotes_file)
        if "EMOTE_PROVIDERS" in env:
            self.catalogs.emote_providers = _split_list(env["EMOTE_PROVIDERS"])

        self.viewer.url = env.get("MULTICHAT_URL", self.viewer.url)
        self.viewer.capacity = _env_int(env, "MAX_MESSAGES", self.viewer.capacity, min_val=1)
        self.viewer.expire_after = _env_float(
            env, "MESSAGE_EXPIRY", self.viewer.expire_after, min_val=1.0
        )


def _split_list(value: str) -> list[str]:
    """Split a comma separated value, dropping blanks."""
    return [part.strip() for part in value.split(",") if part.strip()]


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    value = env.get(key)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(
    env: Mapping[str, str], key: str, default: int, min_val: int = 0, max_val: int | None = None
) -> int:
    value = env.get(key)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from None
    if parsed < min_val or (max_val is not None and parsed > max_val):
        raise ConfigError(f"{key}={parsed} is out of range")
    return parsed


def _env_float(env: Mapping[str, str], key: str, default: float, min_val: float = 0.0) -> float:
    value = env.get(key)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value.strip())
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {value!r}") from None
    if parsed < min_val:
        raise ConfigError(f"{key}={parsed} is below the minimum of {min_val}")
    return parsed
