from __future__ import annotations

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Process-wide client configuration loaded from environment variables.

    Environment variables use the prefix `YMLP_`, e.g. ``YMLP_TIMEOUT``.
    ``.env`` file in project root is also supported.
    """

    # Remote endpoint
    api_url: str = "https://www.ymlp.com/api"
    api_port: int = 443

    # Identification sent in the User-Agent header
    client_id: str = "Python YMLP"
    version: str = "1.0.0"

    # Per-client defaults (overridable on the client itself)
    timeout: int = 60  # seconds
    user_agent: str = ""
    insecure_skip_verify: bool = False
    follow_redirects: bool = True

    # Optional credentials for YmlpClient.from_settings()
    username: Optional[str] = None
    api_key: Optional[str] = None

    class Config:
        env_file = ".env"
        env_prefix = "YMLP_"
        frozen = True


settings = Settings()  # singleton instance
