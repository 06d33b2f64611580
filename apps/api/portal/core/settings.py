from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # DB bootstrap (dev only)
    AUTO_DB_BOOTSTRAP: bool = False

    # Assigning a resolved/closed ticket moves it back to in_progress when enabled.
    ALLOW_ASSIGN_TERMINAL_TICKETS: bool = True

    # Request/ticket number allocation retries against existing rows.
    NUMBER_ALLOCATION_ATTEMPTS: int = 5

    MAIL_WORKER_ENABLED: bool = True

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
