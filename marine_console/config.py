"""
Configuration for the marine console.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Console configuration loaded from environment."""

    # Server connection
    base_url: str = Field(default="http://localhost:8080", description="Backend base URL")
    push_path: str = Field(default="/ws/marines", description="Push channel path")
    request_timeout: float = Field(default=30.0, description="HTTP request timeout seconds")

    # Push channel
    reconnect_delay: float = Field(default=3.0, description="Fixed delay before reconnecting")
    heartbeat: float | None = Field(default=None, description="Liveness ping interval seconds")

    # Editing
    commit_grace_delay: float = Field(
        default=0.1,
        description="Delay before a focus-loss commit fires",
    )

    # Pagination defaults
    default_page_size: int = Field(default=10, description="Default rows per page")
    reference_page_size: int = Field(
        default=1000,
        description="Rows fetched when listing a referenced collection",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format (text, json)")

    model_config = {"env_prefix": "CONSOLE_"}

    @property
    def push_url(self) -> str:
        """Full push channel URL (ws:// or wss:// matching base_url)."""
        base = self.base_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return f"{base}{self.push_path}"
