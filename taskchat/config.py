from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):

    # MongoDB
    mongo_url: str = "mongodb://localhost:27017"
    mongo_db: str = "taskchat"

    # Change notifications go through Redis pub/sub when set, in-process otherwise
    redis_url: str = ""

    # Debounce windows (seconds)
    read_delay: float = 0.5
    resync_delay: float = 0.3

    unknown_user_name: str = "Unknown User"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()


def get_settings() -> Settings:
    return settings
