"""
chatfork Configuration.

Centralized configuration management using Pydantic Settings.
Loads configuration from environment variables.
"""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def get_xdg_data_dir() -> str:
    """
    Get XDG-compliant data directory for chatfork.

    Follows XDG Base Directory Specification:
    - Uses $XDG_DATA_HOME/chatfork if XDG_DATA_HOME is set
    - Falls back to $HOME/.local/share/chatfork if not set
    - Returns relative path .chatfork_data if HOME not available (dev/testing)

    Returns:
        str: Path to data directory
    """
    xdg_data_home = os.getenv("XDG_DATA_HOME")
    if xdg_data_home:
        return str(Path(xdg_data_home) / "chatfork")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "share" / "chatfork")

    # Fallback for development/testing environments without HOME
    return ".chatfork_data"


def get_xdg_state_dir() -> str:
    """
    Get XDG-compliant state directory for chatfork logs.

    - Uses $XDG_STATE_HOME/chatfork/logs if XDG_STATE_HOME is set
    - Falls back to $HOME/.local/state/chatfork/logs if not set
    - Returns relative path ./logs if HOME not available (dev/testing)
    """
    xdg_state_home = os.getenv("XDG_STATE_HOME")
    if xdg_state_home:
        return str(Path(xdg_state_home) / "chatfork" / "logs")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "state" / "chatfork" / "logs")

    return "./logs"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    storage_backend: str = "sql"  # sql or json
    database_url: str = f"sqlite:///{get_xdg_data_dir()}/chatfork.db"
    conversations_dir: str = f"{get_xdg_data_dir()}/conversations"

    # Reply generation
    reply_provider: str = "openai"  # openai (OpenAI-compatible) or anthropic
    openrouter_api_key: str = ""
    openai_base_url: str = "https://openrouter.ai/api/v1"
    anthropic_api_key: str = ""
    default_model: str = "amazon/nova-2-lite-v1:free"
    default_title: str = "New Chat"
    default_system_prompt: str = "You are a helpful assistant."
    reply_max_tokens: int = 2000
    reply_temperature: float = 0.7

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # XDG-compliant log directory (defaults to XDG state dir if empty)
    log_format: str = "standard"  # standard or json
    log_console_enabled: bool = True
    log_file_enabled: bool = True
    log_max_bytes: int = 10_485_760  # 10MB per log file
    log_backup_count: int = 5

    @property
    def log_directory(self) -> Path:
        """Get the log directory path, using XDG default if not specified."""
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path(get_xdg_state_dir())

    @property
    def reply_api_key(self) -> str:
        """API key for the configured reply provider."""
        if self.reply_provider == "anthropic":
            return self.anthropic_api_key
        return self.openrouter_api_key


# Global settings instance
settings = Settings()
