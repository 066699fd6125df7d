import logging

LOGGER = logging.getLogger(__name__)

PARTITION_NAMES = ("year", "month", "day", "hour", "minute")


def extract_partition_key(key: str) -> dict[str, str]:
    """
    Read the `name=value` segments of a batch file key.

    Every partition name is always present, empty when the key does not
    carry it. Segments without `=` (prefixes, file name) are ignored, and
    other `name=value` segments are kept as they are.
    """
    partition = dict.fromkeys(PARTITION_NAMES, "")
    for segment in key.split("/"):
        name, sep, value = segment.partition("=")
        if not sep or not name:
            continue
        partition[name] = value
    LOGGER.debug(f"Partition of {key}: {partition}")
    return partition


def sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_filter_expression(partition: dict[str, str], alias: str = "a") -> str:
    return " and ".join(
        f"{alias}.{name} = {sql_literal(partition.get(name, ''))}"
        for name in PARTITION_NAMES
    )


def format_partition_date(partition: dict[str, str]) -> str:
    """`2023-01-02-03-04` style tag used in logs."""
    return "-".join(partition.get(name, "") for name in PARTITION_NAMES)
