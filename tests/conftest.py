"""
Shared test fixtures for all tests.
Provides settings, sample query results and in-memory AWS doubles.
"""

import os

# Required settings must exist before the apps are imported
os.environ.setdefault("AWS_REGION", "eu-west-1")
os.environ.setdefault("ATHENA_DATABASE_NAME", "telemetry")
os.environ.setdefault("ATHENA_TABLE_NAME", "trip_events")
os.environ.setdefault("TRIP_SUMMARIES_TABLE_NAME", "trip_summaries")
os.environ.setdefault("TRIP_RECORDS_BUCKET_NAME", "trip-records")

import pytest

from core.aws.settings import AwsSettings
from tests.fakes import FakeS3, FakeSummaryTable


@pytest.fixture
def aws_settings() -> AwsSettings:
    return AwsSettings(
        AWS_REGION="us-east-1",
        AWS_ENDPOINT_URL="https://localhost:4566",
        AWS_ACCESS_KEY_ID="test",
        AWS_SECRET_ACCESS_KEY="test",
    )


@pytest.fixture
def summary_csv() -> bytes:
    """Summary query output, as written by Athena (quoted values, empty nulls)."""
    return (
        '"device_id","trip_id","start_date","end_date","duration","event_count"\n'
        '"device-1","trip-1","2023-01-02T03:00:00.000Z","2023-01-02T03:04:00.000Z","240","240"\n'
        '"device-2","trip-2","2023-01-02T03:02:00.000Z","2023-01-02T03:04:10.000Z","130","65"\n'
        '"device-3","trip-3",,"2023-01-02T03:04:30.000Z",,"12"\n'
    ).encode()


def make_event_row(trip_id: str, event_time: int, event_type: str, index: int) -> dict:
    return {
        "eventid": f"{trip_id}-event-{index}",
        "tripid": trip_id,
        "deviceid": "device-1",
        "eventtime": str(event_time),
        "eventdate": f"2023-01-02T03:00:{index:02d}.000Z",
        "eventtype": event_type,
        "year": "2023",
        "month": "01",
        "day": "02",
        "hour": "03",
        "minute": "00",
    }


@pytest.fixture
def trip_rows() -> list[dict]:
    """Reduced records of two trips, trip-1 delivered out of order."""
    return [
        make_event_row("trip-1", 1672628402000, "keep-alive", 2),
        make_event_row("trip-1", 1672628400000, "engine-start", 0),
        make_event_row("trip-2", 1672628400500, "engine-start", 0),
        make_event_row("trip-1", 1672628403000, "trip-finished", 3),
        make_event_row("trip-1", 1672628401000, "keep-alive", 1),
    ]


@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()


@pytest.fixture
def fake_table() -> FakeSummaryTable:
    return FakeSummaryTable()
