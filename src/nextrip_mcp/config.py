"""Runtime configuration, overridable through NEXTRIP_* environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    base_url: str = "https://svc.metrotransit.org/NexTrip"
    stops_url: str = "https://svc.metrotransit.org/NexTrip/Stops"
    user_agent: str = "nextrip-mcp/0.1.0"
    request_timeout: float = 30.0
    rate_limit: float = 3.0  # requests per second
    refresh_interval_seconds: float = 30.0
    bookmarks_path: Path = Path.home() / ".nextrip-mcp" / "bookmarks.json"
    log_level: str = "INFO"

    model_config = {"env_prefix": "NEXTRIP_", "case_sensitive": False}


settings = Settings()
