"""
Trip aggregation service.

Builds the full record set of a finished trip on first request by
selecting its rows out of the reduced trips file, then serves the
stored result on every following request.
"""

import logging
from functools import lru_cache
from typing import Annotated

import msgspec
from fastapi import Depends
from pydantic import ValidationError

from core.aws.async_dynamodb import TripSummaryTable
from core.aws.async_s3 import AsyncS3
from trip_api.core.config import settings
from trip_reduction.partitions import sql_literal
from trip_reduction.schemas import AggregatedTrip, EventRecord, TripSummary

LOGGER = logging.getLogger(__name__)


class TripSummaryNotFound(Exception):
    def __init__(self, trip_id: str):
        self.trip_id = trip_id
        super().__init__(f"Trip {trip_id} not found")


def trip_selection_expression(trip_id: str) -> str:
    return f'select * from s3object s where s."tripid" = {sql_literal(trip_id)}'


class TripAggregationService:
    def __init__(
        self,
        s3: AsyncS3,
        table: TripSummaryTable,
        records_bucket: str,
        records_prefix: str = "trips",
    ):
        self._s3 = s3
        self._table = table
        self.records_bucket = records_bucket
        self.records_prefix = records_prefix.strip("/")

    def trip_key(self, trip_id: str) -> str:
        return f"{self.records_prefix}/{trip_id}.json"

    async def get_summary(self, trip_id: str) -> TripSummary:
        item = await self._table.get_item(trip_id)
        if item is None:
            raise TripSummaryNotFound(trip_id)
        return TripSummary.model_validate(item)

    async def get_aggregated_trip(self, trip_id: str) -> AggregatedTrip:
        summary = await self.get_summary(trip_id)

        if summary.aggregation_executed:
            LOGGER.debug(f"Trip {trip_id} already aggregated, fetching stored trip")
            stored = await self._s3.get_file(self.records_bucket, self.trip_key(trip_id))
            if stored is not None:
                return AggregatedTrip.model_validate_json(stored)
            LOGGER.warning(
                f"Trip {trip_id} is flagged as aggregated but {self.trip_key(trip_id)} is missing, aggregating again"
            )

        return await self.aggregate(summary)

    async def aggregate(self, summary: TripSummary) -> AggregatedTrip:
        LOGGER.info(f"Aggregating trip {summary.trip_id} from {summary.records_file.uri}")
        records = await self.collect_records(summary)

        trip = AggregatedTrip(
            **summary.model_dump(exclude={"aggregation_executed"}),
            aggregation_executed=True,
            records=records,
        )

        # The stored trip must exist before the flag is raised
        await self._s3.upload_file(
            self.records_bucket,
            self.trip_key(summary.trip_id),
            msgspec.json.encode(trip.model_dump(mode="json")),
        )
        if not await self._table.mark_aggregated(summary.trip_id):
            LOGGER.warning(f"Trip summary {summary.trip_id} disappeared before being flagged")

        return trip

    async def collect_records(self, summary: TripSummary) -> list[EventRecord]:
        records: list[EventRecord] = []
        async for page in self._s3.select_csv_rows(
            summary.records_file.bucket,
            summary.records_file.key,
            trip_selection_expression(summary.trip_id),
        ):
            for row in page:
                try:
                    records.append(EventRecord.model_validate(row))
                except ValidationError as e:
                    LOGGER.warning(f"Skipping malformed record of trip {summary.trip_id}: {e}")

        # Selection output order is not guaranteed to be chronological
        records.sort(key=lambda record: record.event_time)
        LOGGER.debug(f"Collected {len(records)} records for trip {summary.trip_id}")
        return records


@lru_cache
def get_trip_aggregation_service() -> TripAggregationService:
    return TripAggregationService(
        s3=AsyncS3(),
        table=TripSummaryTable(settings.TRIP_SUMMARIES_TABLE_NAME),
        records_bucket=settings.TRIP_RECORDS_BUCKET_NAME,
        records_prefix=settings.TRIP_RECORDS_PREFIX,
    )


TripAggregationDep = Annotated[TripAggregationService, Depends(get_trip_aggregation_service)]
