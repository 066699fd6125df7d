import dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application configuration, loaded from environment variables and default values.
    """

    dotenv.load_dotenv()

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=True
    )

    # API
    API_VERSION: str = "v1"
    API_V1_STR: str = f"/{API_VERSION}"
    PROJECT_NAME: str = "Trip Aggregation"
    LOG_LEVEL: str = "INFO"

    # Trip summaries table
    TRIP_SUMMARIES_TABLE_NAME: str = Field(default=...)

    # Aggregated trips, stored as {TRIP_RECORDS_PREFIX}/{trip_id}.json
    TRIP_RECORDS_BUCKET_NAME: str = Field(default=...)
    TRIP_RECORDS_PREFIX: str = "trips"


# Singleton for settings
settings = Settings()
