import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Mapping, Optional, Tuple

VERSION = "1.0.0"


def _origins(raw: str) -> Tuple[str, ...]:
    return tuple(o.strip() for o in raw.split(",") if o.strip()) or ("*",)


@dataclass(frozen=True)
class Settings:
    prometheus_url: Optional[str] = None
    prometheus_timeout: float = 5.0
    cors_allow_origins: Tuple[str, ...] = field(default=("*",))
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3001

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> "Settings":
        url = (environ.get("PROMETHEUS_URL") or "").strip().rstrip("/")
        return cls(
            prometheus_url=url or None,
            prometheus_timeout=float(environ.get("PROMETHEUS_TIMEOUT_SECONDS", "5")),
            cors_allow_origins=_origins(environ.get("CORS_ALLOW_ORIGINS", "*")),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
            host=environ.get("HOST", "0.0.0.0"),
            port=int(environ.get("PORT", "3001")),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
