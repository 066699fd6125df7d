from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReductionSettings(BaseSettings):
    """
    Configuration of the reduction pipeline, loaded from environment variables and default values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=True
    )

    # Query engine
    ATHENA_DATABASE_NAME: str = Field(default=...)
    ATHENA_TABLE_NAME: str = Field(default=...)
    ATHENA_WORKGROUP: str = "TripReduction"
    ATHENA_OUTPUT_LOCATION: str | None = None
    ATHENA_POLL_INTERVAL: float = 1.0

    # Summary store
    TRIP_SUMMARIES_TABLE_NAME: str = Field(default=...)
    SUMMARY_BATCH_SIZE: int = Field(default=25, ge=1, le=25)

    # Telemetry devices emit one event per second
    EXPECTED_EVENTS_PER_SECOND: float = Field(default=1.0, gt=0)

    LOG_LEVEL: str = "INFO"


@lru_cache
def get_reduction_settings() -> ReductionSettings:
    return ReductionSettings()
