import logging
from io import BytesIO

import pandas as pd
from pandas.errors import EmptyDataError
from pydantic import ValidationError

from core.aws.async_dynamodb import TripSummaryTable
from core.aws.async_s3 import AsyncS3

from .schemas import RecordsFile, TripSummary

LOGGER = logging.getLogger(__name__)


def _optional(value: str) -> str | None:
    return value if value != "" else None


def data_integrity_rate(
    event_count: int, duration: int | None, expected_events_per_second: float
) -> float | None:
    if not duration or duration <= 0:
        return None
    return event_count / (duration * expected_events_per_second)


def parse_trip_summaries(
    content: bytes,
    records_file: RecordsFile,
    expected_events_per_second: float = 1.0,
) -> list[TripSummary]:
    """
    Parse the summary query result (CSV with header) into summaries, each
    pointing at the shared reduced records file.
    Lines that cannot be read as a trip are skipped.
    """
    try:
        df = pd.read_csv(
            BytesIO(content),
            dtype="string",
            keep_default_na=False,
            on_bad_lines="skip",
        )
    except EmptyDataError:
        return []
    # Short lines leave missing cells as NA
    df = df.fillna("")

    summaries = []
    for row in df.to_dict(orient="records"):
        try:
            duration = _optional(row.get("duration", ""))
            event_count = int(row["event_count"])
            summary = TripSummary(
                trip_id=row["trip_id"],
                device_id=row["device_id"],
                start_date=_optional(row.get("start_date", "")),
                end_date=row["end_date"],
                duration=duration,
                event_count=event_count,
                data_integrity_rate=data_integrity_rate(
                    event_count,
                    int(duration) if duration is not None else None,
                    expected_events_per_second,
                ),
                records_file=records_file,
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            LOGGER.warning(f"Skipping malformed trip summary row {row}: {e}")
            continue
        if not summary.trip_id:
            LOGGER.warning(f"Skipping trip summary row without trip id: {row}")
            continue
        summaries.append(summary)
    return summaries


class SummaryWriter:
    """
    Persist one summary per finished trip of a reduction cycle.

    Writing the same trip twice refreshes the same item, the aggregation
    flag of an already aggregated trip is left untouched.
    """

    def __init__(
        self,
        s3: AsyncS3,
        table: TripSummaryTable,
        expected_events_per_second: float = 1.0,
    ):
        self._s3 = s3
        self._table = table
        self.expected_events_per_second = expected_events_per_second

    async def write(self, summary_location: str, records_location: str) -> int:
        summary_file = RecordsFile.from_uri(summary_location)
        records_file = RecordsFile.from_uri(records_location)

        LOGGER.debug(f"Reading trip summary file {summary_file.uri}")
        content = await self._s3.get_file(summary_file.bucket, summary_file.key)
        if content is None:
            raise FileNotFoundError(f"Trip summary file {summary_file.uri} not found")

        summaries = parse_trip_summaries(
            content, records_file, self.expected_events_per_second
        )
        LOGGER.info(f"Storing {len(summaries)} trip summaries")
        if not summaries:
            return 0

        written = await self._table.put_derived_fields(
            [summary.derived_fields() for summary in summaries]
        )
        LOGGER.info("Trip summaries stored successfully")
        return written
