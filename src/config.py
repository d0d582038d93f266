"""Application configuration loaded from environment variables and .env file."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Values are loaded from environment variables first,
    then from a .env file in the project root as fallback.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    DATABASE_URL: str = "sqlite:///./dev.db"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Authored content
    CONVERSATION_CONTENT_PATH: str = "src/data/conversation_templates.json"
    WORLD_SEED_PATH: str = "src/data/demo_world.json"

    # None이면 매 실행마다 다른 시드
    RNG_SEED: Optional[int] = None

    # Conversation orchestration tuning
    CONVERSATION_RANGE: int = 4
    INITIATION_CHANCE: float = 0.08
    MIN_TURNS_BETWEEN_CONVERSATIONS: int = 8
    MAX_SIMULTANEOUS_CONVERSATIONS: int = 4
    SAME_FACTION_PARTNER_CHANCE: float = 0.7
    COOLDOWN_CLEANUP_CHANCE: float = 0.1
    HOSTILITY_TOPIC_WEIGHT: int = 0

    # Reputation classification
    FRIENDLY_THRESHOLD: int = 25
    HOSTILE_THRESHOLD: int = -25


settings = Settings()
