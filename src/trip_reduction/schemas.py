"""Schemas shared by the reduction pipeline and the trips API"""

from enum import StrEnum
from typing import Any
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class EventType(StrEnum):
    ENGINE_START = "engine-start"
    KEEP_ALIVE = "keep-alive"
    TRIP_FINISHED = "trip-finished"


class EventRecord(BaseModel):
    """One telemetry event, as stored in the raw event table"""

    model_config = ConfigDict(extra="allow")

    event_id: str = Field(validation_alias=AliasChoices("event_id", "eventid"))
    trip_id: str = Field(validation_alias=AliasChoices("trip_id", "tripid"))
    device_id: str = Field(validation_alias=AliasChoices("device_id", "deviceid"))
    event_time: int = Field(
        validation_alias=AliasChoices("event_time", "eventtime"),
        description="Epoch milliseconds",
    )
    event_date: str = Field(
        validation_alias=AliasChoices("event_date", "eventdate"),
        description="ISO-8601 date",
    )
    event_type: EventType = Field(validation_alias=AliasChoices("event_type", "eventtype"))
    random_data: str | None = Field(
        None, validation_alias=AliasChoices("random_data", "randomdata")
    )


class RecordsFile(BaseModel):
    """Pointer to an object in the object store"""

    bucket: str
    key: str

    @classmethod
    def from_uri(cls, uri: str) -> "RecordsFile":
        """Split an `s3://bucket/some/key` location."""
        parsed = urlparse(uri)
        if parsed.scheme != "s3" or not parsed.netloc or not parsed.path.strip("/"):
            raise ValueError(f"Not an object store location: {uri}")
        return cls(bucket=parsed.netloc, key=parsed.path.lstrip("/"))

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


class TripSummary(BaseModel):
    """One finished trip"""

    trip_id: str
    device_id: str
    start_date: str | None = Field(None, description="Null when no engine start was found")
    end_date: str
    duration: int | None = Field(None, description="Trip duration in seconds")
    event_count: int
    data_integrity_rate: float | None = Field(
        None, description="Received events vs expected events for the duration"
    )
    records_file: RecordsFile
    aggregation_executed: bool = False

    def derived_fields(self) -> dict[str, Any]:
        """Everything the reduction owns, i.e. all but the aggregation flag."""
        return self.model_dump(exclude={"aggregation_executed"})


class AggregatedTrip(TripSummary):
    records: list[EventRecord] = Field(default_factory=list)


class BatchFileNotification(BaseModel):
    """Write notification of a new raw batch file"""

    model_config = ConfigDict(populate_by_name=True)

    bucket_name: str = Field(alias="bucketName")
    key: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "BatchFileNotification":
        """
        Accepts the flat `{bucketName, key}` form as well as the storage API
        call event, which nests it under `detail.requestParameters`.
        """
        detail = payload.get("detail")
        if isinstance(detail, dict) and "requestParameters" in detail:
            payload = detail["requestParameters"]
        return cls.model_validate(payload)


class ReductionInput(BaseModel):
    summary_query: str
    records_query: str
    filter_expression: str
    formatted_date: str
