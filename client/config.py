"""
Client configuration settings.
"""

import os
from dataclasses import dataclass


@dataclass
class ClientSettings:
    """Client configuration."""

    # Server connection
    server_host: str = "localhost"
    server_port: int = 8765

    # Reconnection settings
    reconnect_attempts: int = 5
    reconnect_delay: float = 2.0

    # Request settings
    request_timeout: float = 10.0

    # Turn timer (0 disables the local countdown)
    turn_timeout: float = 30.0

    @property
    def server_url(self) -> str:
        return f"ws://{self.server_host}:{self.server_port}"


def load_settings() -> ClientSettings:
    """Load settings from environment variables."""
    return ClientSettings(
        server_host=os.getenv("MAFIA_SERVER_HOST", "localhost"),
        server_port=int(os.getenv("MAFIA_SERVER_PORT", "8765")),
        reconnect_attempts=int(os.getenv("MAFIA_RECONNECT_ATTEMPTS", "5")),
        reconnect_delay=float(os.getenv("MAFIA_RECONNECT_DELAY", "2.0")),
        request_timeout=float(os.getenv("MAFIA_REQUEST_TIMEOUT", "10.0")),
        turn_timeout=float(os.getenv("MAFIA_TURN_TIMEOUT", "30")),
    )


settings = load_settings()
