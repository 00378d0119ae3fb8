import os
from typing import Optional

from pydantic import BaseModel


VERSION = "0.1.0"
USER_AGENT = f"credmail/{VERSION}"

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
DEFAULT_IDENTITY_HOST = "login.microsoftonline.com"
DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_SETTINGS_PATH = "credmail/data/settings.json"


class AppConfig(BaseModel):
    api_key: Optional[str] = None
    settings_path: str = DEFAULT_SETTINGS_PATH
    draft_stagger_ms: int = 150
    token_refresh_margin_seconds: int = 60
    graph_identity_host: str = DEFAULT_IDENTITY_HOST
    graph_base_url: str = DEFAULT_GRAPH_BASE_URL
    obs_enabled: bool = False
    sentry_dsn: Optional[str] = None
    environment: str = "development"

    @property
    def draft_stagger_seconds(self) -> float:
        return self.draft_stagger_ms / 1000.0


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw.isdigit():
        return default
    return int(raw)


def load_config() -> AppConfig:
    return AppConfig(
        api_key=os.getenv("API_KEY") or None,
        settings_path=os.getenv("SETTINGS_PATH", DEFAULT_SETTINGS_PATH),
        draft_stagger_ms=_int_env("DRAFT_STAGGER_MS", 150),
        token_refresh_margin_seconds=_int_env("TOKEN_REFRESH_MARGIN_SECONDS", 60),
        graph_identity_host=os.getenv("GRAPH_IDENTITY_HOST", DEFAULT_IDENTITY_HOST),
        graph_base_url=os.getenv("GRAPH_BASE_URL", DEFAULT_GRAPH_BASE_URL).rstrip("/"),
        obs_enabled=os.getenv("OBS_ENABLED", "false").lower() == "true",
        sentry_dsn=os.getenv("SENTRY_DSN") or None,
        environment=os.getenv("ENVIRONMENT", "development"),
    )
