import asyncio
import logging
from collections.abc import Iterable
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any

from botocore.exceptions import ClientError

from .settings import AwsSettings, build_session, get_aws_settings

LOGGER = logging.getLogger(__name__)

# DynamoDB BatchWriteItem limit, kept as the write chunk size
MAX_BATCH_SIZE = 25


def to_dynamo_value(value: Any) -> Any:
    """boto3 refuses floats, numbers have to be sent as Decimal."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_dynamo_value(v) for v in value]
    return value


def chunked(items: list[Any], size: int) -> Iterable[list[Any]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


class TripSummaryTable:
    """
    Access to the trip summaries table.

    Writers never replace a whole item. Summary refreshes only set the
    derived fields they own, and the aggregation flag is only ever set by
    `mark_aggregated`, so the two can interleave freely.
    """

    def __init__(
        self,
        table_name: str,
        key_name: str = "trip_id",
        flag_name: str = "aggregation_executed",
        batch_size: int = MAX_BATCH_SIZE,
        settings: AwsSettings | None = None,
    ):
        if not 0 < batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        self._settings = settings or get_aws_settings()
        self.session = build_session(self._settings)
        self.table_name = table_name
        self.key_name = key_name
        self.flag_name = flag_name
        self.batch_size = batch_size

    @asynccontextmanager
    async def _table(self):
        async with self.session.resource(
            "dynamodb", **self._settings.client_kwargs()
        ) as dynamo:
            yield await dynamo.Table(self.table_name)

    async def get_item(self, key: str) -> dict[str, Any] | None:
        async with self._table() as table:
            response = await table.get_item(Key={self.key_name: key})
        return response.get("Item")

    def _derived_fields_update(self, item: dict[str, Any]) -> dict[str, Any]:
        fields = {
            k: v for k, v in item.items() if k not in (self.key_name, self.flag_name)
        }
        names = {"#flag": self.flag_name}
        values: dict[str, Any] = {":unset": False}
        assignments = []
        for i, (field, value) in enumerate(fields.items()):
            names[f"#f{i}"] = field
            values[f":v{i}"] = to_dynamo_value(value)
            assignments.append(f"#f{i} = :v{i}")
        assignments.append("#flag = if_not_exists(#flag, :unset)")
        return {
            "Key": {self.key_name: item[self.key_name]},
            "UpdateExpression": "SET " + ", ".join(assignments),
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
        }

    async def put_derived_fields(self, items: list[dict[str, Any]]) -> int:
        """
        Create or refresh items, chunk by chunk.

        A failing chunk raises and leaves previous chunks written.
        Returns the number of items written.
        """
        written = 0
        async with self._table() as table:
            for chunk in chunked(items, self.batch_size):
                await asyncio.gather(
                    *(
                        table.update_item(**self._derived_fields_update(item))
                        for item in chunk
                    )
                )
                written += len(chunk)
                LOGGER.debug(f"Wrote {written}/{len(items)} items to {self.table_name}")
        return written

    async def mark_aggregated(self, key: str) -> bool:
        """
        Set the aggregation flag of an existing item.
        Returns False when the item does not exist.
        """
        async with self._table() as table:
            try:
                await table.update_item(
                    Key={self.key_name: key},
                    UpdateExpression="SET #flag = :done",
                    ConditionExpression="attribute_exists(#key)",
                    ExpressionAttributeNames={
                        "#flag": self.flag_name,
                        "#key": self.key_name,
                    },
                    ExpressionAttributeValues={":done": True},
                )
            except ClientError as e:
                if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                    return False
                raise
        return True
