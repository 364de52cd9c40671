from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Persistence
    RACETIMER_DB_URL: str = "sqlite:///./racetimer.db"
    RACETIMER_STORE_KEY: str = "@racertron_races_v1"
    RACETIMER_SEED_DEMO: bool = True

    # Clock / display
    RACETIMER_TIMEZONE: str = "UTC"
    RACETIMER_RECENT_STOPPED_HOURS: int = 24
    CLOCK_POLL_MS: int = 100

    # Export
    RACETIMER_EXPORT_DIR: str = "./exports"

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
