"""aiohttp application serving the aggregated chat feed."""

import logging
from dataclasses import dataclass, field

from aiohttp import web

from .chat.badges import BadgeCatalog, fetch_twitch_badges, load_badge_catalog
from .chat.emotes.catalog import EmoteCatalog, load_emote_catalog
from .chat.hub import BroadcastHub
from .chat.manager import AdapterSupervisor
from .core.models import Platform
from .core.settings import Settings

logger = logging.getLogger(__name__)

INDEX_TEXT = "Multichat server. Connect a WebSocket client to /ws.\n"


@dataclass
class Catalogs:
    """Process-wide badge and emote catalogs, filled once at startup."""

    badges: BadgeCatalog = field(default_factory=BadgeCatalog)
    emotes: EmoteCatalog = field(default_factory=EmoteCatalog)
    loaded: bool = False


SETTINGS_KEY = web.AppKey("settings", Settings)
HUB_KEY = web.AppKey("hub", BroadcastHub)
SUPERVISOR_KEY = web.AppKey("supervisor", AdapterSupervisor)
CATALOGS_KEY = web.AppKey("catalogs", Catalogs)


async def load_catalogs(settings: Settings) -> Catalogs:
    """Load the process-wide badge and emote catalogs.

    Sources that fail are logged and skipped; the result may be empty.
    """
    catalogs = settings.catalogs
    twitch = settings.twitch

    badges = BadgeCatalog()
    if twitch.is_configured:
        badges = await fetch_twitch_badges(
            client_id=twitch.client_id,
            oauth_token=twitch.oauth_token,
            channel_login=twitch.channels[0],
        )
    if catalogs.badges_file:
        badges = badges.merged(load_badge_catalog(catalogs.badges_file))

    emotes = await load_emote_catalog(
        catalogs.emote_providers,
        path=catalogs.emotes_file or None,
        oauth_token=twitch.oauth_token,
        client_id=twitch.client_id,
    )
    logger.info(f"Catalogs loaded: {len(badges)} badges, {len(emotes)} emotes")
    return Catalogs(badges=badges, emotes=emotes, loaded=True)


# Handlers


async def index(request: web.Request) -> web.StreamResponse:
    """WebSocket upgrades on ``/`` join the feed too; plain GETs get a hint."""
    if request.headers.get("Upgrade", "").lower() == "websocket":
        return await request.app[HUB_KEY].handle_websocket(request)
    return web.Response(text=INDEX_TEXT)


async def websocket(request: web.Request) -> web.StreamResponse:
    return await request.app[HUB_KEY].handle_websocket(request)


async def health(request: web.Request) -> web.Response:
    return web.json_response({"ok": True})


async def status(request: web.Request) -> web.Response:
    return web.json_response(request.app[SUPERVISOR_KEY].statuses())


def _platform_from(request: web.Request) -> Platform:
    name = request.match_info["platform"]
    try:
        return Platform(name.lower())
    except ValueError:
        raise web.HTTPNotFound(
            text=f'{{"error": "unknown platform: {name}"}}', content_type="application/json"
        ) from None


def _adapter_response(supervisor: AdapterSupervisor, platform: Platform) -> web.Response:
    return web.json_response(
        {"platform": platform.value, "status": supervisor.statuses()[platform.value]}
    )


async def start_adapter(request: web.Request) -> web.Response:
    platform = _platform_from(request)
    supervisor = request.app[SUPERVISOR_KEY]
    if not await supervisor.restart(platform):
        return web.json_response({"error": f"{platform.value} is not configured"}, status=404)
    return _adapter_response(supervisor, platform)


async def stop_adapter(request: web.Request) -> web.Response:
    platform = _platform_from(request)
    supervisor = request.app[SUPERVISOR_KEY]
    if not await supervisor.stop(platform):
        return web.json_response({"error": f"{platform.value} is not configured"}, status=404)
    return _adapter_response(supervisor, platform)


async def badges(request: web.Request) -> web.Response:
    return web.json_response(request.app[CATALOGS_KEY].badges.to_dict())


async def emotes(request: web.Request) -> web.Response:
    return web.json_response(request.app[CATALOGS_KEY].emotes.to_dict())


# Lifecycle


async def _on_startup(app: web.Application) -> None:
    catalogs = app[CATALOGS_KEY]
    if not catalogs.loaded:
        loaded = await load_catalogs(app[SETTINGS_KEY])
        catalogs.badges, catalogs.emotes, catalogs.loaded = loaded.badges, loaded.emotes, True
    await app[SUPERVISOR_KEY].start_all()
    server = app[SETTINGS_KEY].server
    logger.info(f"Multichat server listening on ws://{server.host}:{server.port}/ws")


async def _on_shutdown(app: web.Application) -> None:
    # Adapters first so their final status frames still reach viewers
    await app[SUPERVISOR_KEY].stop_all()
    await app[HUB_KEY].close()


def create_app(
    settings: Settings,
    hub: BroadcastHub | None = None,
    supervisor: AdapterSupervisor | None = None,
    catalogs: Catalogs | None = None,
) -> web.Application:
    """Build the web application.

    Catalogs are loaded on startup unless already loaded ones are passed in.
    """
    if hub is None:
        hub = BroadcastHub(
            history_size=settings.server.history_size,
            replay_history=settings.server.replay_history,
        )
    if supervisor is None:
        supervisor = AdapterSupervisor(settings, hub)

    app = web.Application()
    app[SETTINGS_KEY] = settings
    app[HUB_KEY] = hub
    app[SUPERVISOR_KEY] = supervisor
    app[CATALOGS_KEY] = catalogs or Catalogs()

    app.router.add_get("/", index)
    app.router.add_get("/ws", websocket)
    app.router.add_get("/health", health)
    app.router.add_get("/api/status", status)
    app.router.add_post("/api/{platform}/start", start_adapter)
    app.router.add_post("/api/{platform}/stop", stop_adapter)
    app.router.add_get("/api/badges", badges)
    app.router.add_get("/api/emotes", emotes)

    app.on_startup.append(_on_startup)
    app.on_shutdown.append(_on_shutdown)
    return app
