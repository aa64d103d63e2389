import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from dotenv import load_dotenv


# Load .env once at import time (support running from any cwd)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def _split_origins(raw: str) -> tuple[str, ...]:
    return tuple(o.strip() for o in raw.split(",") if o.strip())


@dataclass(frozen=True)
class Settings:
    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    CORS_ORIGINS: tuple[str, ...] = field(
        default_factory=lambda: _split_origins(os.getenv("CORS_ORIGINS", "*"))
    )

    # Signaling
    SEND_QUEUE_SIZE: int = int(os.getenv("SEND_QUEUE_SIZE", "256"))

    # STUN/TURN
    STUN_SERVER: str | None = os.getenv("STUN_SERVER")
    TURN_URL: str | None = os.getenv("TURN_URL")
    TURN_USERNAME: str | None = os.getenv("TURN_USERNAME")
    TURN_PASSWORD: str | None = os.getenv("TURN_PASSWORD")

    # Client
    SIGNALING_URL: str = os.getenv("SIGNALING_URL", "ws://localhost:8000/ws")
    VIDEO_DEVICE: str | None = os.getenv("VIDEO_DEVICE")
    VIDEO_FORMAT: str | None = os.getenv("VIDEO_FORMAT")
    AUDIO_DEVICE: str | None = os.getenv("AUDIO_DEVICE")
    AUDIO_FORMAT: str | None = os.getenv("AUDIO_FORMAT")

    @property
    def has_turn_server(self) -> bool:
        return bool(self.TURN_URL and self.TURN_USERNAME and self.TURN_PASSWORD)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

# Convenient module-level alias
settings = get_settings()


PUBLIC_STUN_SERVERS = (
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
)


def ice_servers(cfg: Settings = settings) -> list[dict]:
    """ICE servers clients should use: configured STUN, public STUN, optional TURN."""
    servers = []
    if cfg.STUN_SERVER:
        servers.append({"urls": cfg.STUN_SERVER})
    # Always include Google public STUN as fallback
    servers.extend({"urls": url} for url in PUBLIC_STUN_SERVERS)

    if cfg.has_turn_server:
        servers.append({
            "urls": cfg.TURN_URL,
            "username": cfg.TURN_USERNAME,
            "credential": cfg.TURN_PASSWORD,
        })
    return servers
