"""
Environment-driven settings for the gateway.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


@dataclass
class GatewaySettings:
    api_key: Optional[str] = None
    model: str = DEFAULT_GEMINI_MODEL
    base_url: str = DEFAULT_GEMINI_BASE_URL
    temperature: float = 0.5
    timeout_seconds: float = 30.0
    demo_mode: bool = False
    session_ttl_seconds: int = 3600
    session_max: int = 1024
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        origins = os.getenv("CORS_ORIGINS", "http://localhost:3000")
        return cls(
            api_key=os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY"),
            model=os.getenv("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
            base_url=os.getenv("GEMINI_BASE_URL", DEFAULT_GEMINI_BASE_URL).rstrip("/"),
            temperature=float(os.getenv("GEMINI_TEMPERATURE", "0.5")),
            timeout_seconds=float(os.getenv("GEMINI_TIMEOUT_SECONDS", "30")),
            demo_mode=_env_bool("DEMO_MODE"),
            session_ttl_seconds=int(os.getenv("SESSION_TTL_SECONDS", "3600")),
            session_max=int(os.getenv("SESSION_MAX", "1024")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )

    def require_api_key(self) -> str:
        if not self.api_key:
            raise RuntimeError("GEMINI_API_KEY environment variable not set")
        return self.api_key
