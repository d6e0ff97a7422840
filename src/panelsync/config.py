from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    request_logs_limit: int = 50
    request_logs_poll_seconds: float = 2.0

    # Expiry-driven circuit refresh
    circuit_refresh_fallback_seconds: float = 30.0
    circuit_refresh_epsilon_seconds: float = 0.25
    circuit_refresh_min_delay_seconds: float = 0.2
    watched_cli_keys: List[str] = ["claude", "codex", "gemini"]

    # Host event throttles
    circuit_throttle_seconds: float = 0.5
    status_throttle_seconds: float = 0.3
    request_throttle_seconds: float = 1.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
