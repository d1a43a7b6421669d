from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # One local database per installation.
    DATABASE_URL: str = "sqlite:///./recovery.db"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Length of a freshly seeded program, in days.
    TOTAL_PROGRAM_DAYS: int = 180
    # Seed program/level/no-contact start dates with "now" when no record exists.
    SEED_NEW_USER: bool = True

    # Comma-separated allowed origins, or "*" to allow all.
    CORS_ORIGINS: str = "*"

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
