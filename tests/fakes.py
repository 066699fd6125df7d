"""In-memory doubles of the AWS clients, with call counters."""

import copy
import re
from collections.abc import AsyncGenerator
from typing import Any

from core.aws.async_dynamodb import to_dynamo_value

REDUCED_BUCKET = "reduced-trips"
SUMMARY_KEY = "results/summary-0001.csv"
RECORDS_KEY = "results/records-0001.csv"

_SELECTED_TRIP = re.compile(r"""s\."tripid" = '((?:[^']|'')*)'$""")


class FakeS3:
    def __init__(self):
        self.files: dict[tuple[str, str], bytes] = {}
        self.csv_rows: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.get_calls = 0
        self.upload_calls = 0
        self.select_calls = 0
        self.page_size = 2

    async def get_file(self, bucket: str, path: str) -> bytes | None:
        self.get_calls += 1
        return self.files.get((bucket, path))

    async def upload_file(
        self, bucket: str, path: str, file: bytes, content_type: str = "application/json"
    ) -> None:
        self.upload_calls += 1
        self.files[(bucket, path)] = file

    async def select_csv_rows(
        self, bucket: str, path: str, expression: str
    ) -> AsyncGenerator[list[dict[str, Any]], None]:
        self.select_calls += 1
        match = _SELECTED_TRIP.search(expression)
        assert match, f"Unexpected selection: {expression}"
        trip_id = match.group(1).replace("''", "'")
        rows = [r for r in self.csv_rows.get((bucket, path), []) if r["tripid"] == trip_id]
        for i in range(0, len(rows), self.page_size):
            yield rows[i : i + self.page_size]


class FakeSummaryTable:
    """Mirrors the field scoped updates of TripSummaryTable."""

    key_name = "trip_id"
    flag_name = "aggregation_executed"

    def __init__(self):
        self.items: dict[str, dict[str, Any]] = {}
        self.put_calls = 0
        self.mark_calls = 0

    async def get_item(self, key: str) -> dict[str, Any] | None:
        item = self.items.get(key)
        return copy.deepcopy(item) if item is not None else None

    async def put_derived_fields(self, items: list[dict[str, Any]]) -> int:
        self.put_calls += 1
        for item in items:
            stored = self.items.setdefault(item[self.key_name], {self.flag_name: False})
            for field, value in item.items():
                if field != self.flag_name:
                    stored[field] = to_dynamo_value(value)
        return len(items)

    async def mark_aggregated(self, key: str) -> bool:
        self.mark_calls += 1
        if key not in self.items:
            return False
        self.items[key][self.flag_name] = True
        return True
