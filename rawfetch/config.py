# /rawfetch/config.py
from __future__ import annotations

import os

from pydantic import BaseModel


class Settings(BaseModel):
    USER_AGENT: str = os.getenv("USER_AGENT", "rawfetch/0.1")
    VERIFY_TLS: bool = os.getenv("VERIFY_TLS", "true").lower() == "true"

    # Timeouts (seconds); <= 0 disables the policy
    TIMEOUT_SECONDS: float = float(os.getenv("TIMEOUT_SECONDS", "30.0"))  # overall
    READ_TIMEOUT_SECONDS: float = float(os.getenv("READ_TIMEOUT_SECONDS", "10.0"))  # idle
    TIMER_TICK_SECONDS: float = float(os.getenv("TIMER_TICK_SECONDS", "0.25"))

    # Redirects
    MAX_REDIRECTS: int = int(os.getenv("MAX_REDIRECTS", "10"))

    # Cookies / cache
    COOKIES_UNSAFE: bool = os.getenv("COOKIES_UNSAFE", "false").lower() == "true"
    REDIS_URL: str | None = os.getenv("REDIS_URL")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "WARNING")


settings = Settings()
