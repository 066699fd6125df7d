"""
Athena statements of a reduction cycle.

Both cycle queries are filtered by the same partition expression, the
summary query lists finished trips and the records query unifies every
event of these trips into a single result file.
"""

from .schemas import EventType

FINISHED_TRIPS_SUMMARY_QUERY = """SELECT
    a.deviceid as device_id,
    a.tripid as trip_id,
    b.eventdate as start_date,
    a.eventdate as end_date,
    date_diff('second', from_iso8601_timestamp(b.eventdate), from_iso8601_timestamp(a.eventdate)) as duration,
    (select count(1) from "{table}" c where a.tripid = c.tripid) as event_count
FROM "{table}" a
LEFT JOIN "{table}" b
    on a.tripid = b.tripid and b.eventtype = '{engine_start}'
where
    a.eventtype = '{trip_finished}'
    and {filter};"""

REDUCED_TRIPS_QUERY = """SELECT *
FROM "{table}" a
where tripid in (SELECT tripid
    FROM "{table}" a
    where a.eventtype = '{trip_finished}'
        and {filter})
order by tripid, eventdate;"""

REPAIR_PARTITIONS_QUERY = "MSCK REPAIR TABLE {table};"


class QueryTemplates:
    def __init__(self, table_name: str):
        if '"' in table_name:
            raise ValueError(f"Invalid table name: {table_name}")
        self.table_name = table_name

    def _render(self, template: str, filter_expression: str) -> str:
        return template.format(
            table=self.table_name,
            engine_start=EventType.ENGINE_START,
            trip_finished=EventType.TRIP_FINISHED,
            filter=filter_expression,
        )

    def finished_trips_summary(self, filter_expression: str) -> str:
        return self._render(FINISHED_TRIPS_SUMMARY_QUERY, filter_expression)

    def reduced_trips(self, filter_expression: str) -> str:
        return self._render(REDUCED_TRIPS_QUERY, filter_expression)

    def repair_partitions(self) -> str:
        return REPAIR_PARTITIONS_QUERY.format(table=self.table_name)
