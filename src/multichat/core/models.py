"""Core data models for Multichat."""

from enum import Enum


class Platform(str, Enum):
    """Supported chat platforms."""

    TWITCH = "twitch"
    YOUTUBE = "youtube"
    TIKTOK = "tiktok"

    @property
    def status_type(self) -> str:
        """Wire ``type`` used for this platform's status frames."""
        return f"{self.value}-status"


class ConnectionStatus(str, Enum):
    """Adapter connection states.

    idle -> connecting -> connected <-> reconnecting -> (stopped | failed)
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        """Whether an adapter in this state owns a running connection task."""
        return self in (
            ConnectionStatus.CONNECTING,
            ConnectionStatus.CONNECTED,
            ConnectionStatus.RECONNECTING,
        )
