"""
Server configuration loaded from environment variables.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Server configuration."""

    # Server settings
    HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("SERVER_PORT", "8765"))

    # Database
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "./data/mafia.db"))
    SNAPSHOT_KEEP_COUNT: int = int(os.getenv("SNAPSHOT_KEEP_COUNT", "20"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Match settings
    DEFAULT_MAX_PLAYERS: int = int(os.getenv("DEFAULT_MAX_PLAYERS", "4"))
    TURN_TIMEOUT: float = float(os.getenv("TURN_TIMEOUT", "30"))
    CONNECT_TIMEOUT: float = float(os.getenv("CONNECT_TIMEOUT", "30"))

    @classmethod
    def ensure_directories(cls) -> None:
        """Create necessary directories if they don't exist."""
        cls.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)


config = Config()
settings = config  # Alias for backward compatibility
