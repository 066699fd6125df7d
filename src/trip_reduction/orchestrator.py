import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum

from core.aws.async_athena import AsyncAthena

from .partitions import build_filter_expression, extract_partition_key, format_partition_date
from .queries import QueryTemplates
from .schemas import ReductionInput
from .summary_writer import SummaryWriter

LOGGER = logging.getLogger(__name__)


class CycleState(StrEnum):
    START = "START"
    PREPARE_INPUT = "PREPARE_INPUT"
    REFRESH_PARTITIONS = "REFRESH_PARTITIONS"
    RUN_QUERIES = "RUN_QUERIES"
    WRITE_SUMMARIES = "WRITE_SUMMARIES"
    DONE = "DONE"
    FAILED = "FAILED"


class ReductionCycleFailed(Exception):
    def __init__(self, key: str, stage: CycleState, cause: BaseException):
        self.key = key
        self.stage = stage
        self.cause = cause
        super().__init__(f"Reduction of {key} failed during {stage}: {cause}")


@dataclass
class CycleResult:
    key: str
    formatted_date: str
    summary_location: str
    records_location: str
    summaries_written: int
    states: list[CycleState] = field(default_factory=list)


def prepare_input(key: str, templates: QueryTemplates) -> ReductionInput:
    partition = extract_partition_key(key)
    filter_expression = build_filter_expression(partition)
    return ReductionInput(
        summary_query=templates.finished_trips_summary(filter_expression),
        records_query=templates.reduced_trips(filter_expression),
        filter_expression=filter_expression,
        formatted_date=format_partition_date(partition),
    )


class ReductionCycle:
    """
    Reduction of the partition of one new batch file.

    START -> PREPARE_INPUT -> REFRESH_PARTITIONS -> RUN_QUERIES -> WRITE_SUMMARIES -> DONE

    Any error moves the cycle to FAILED and is raised as
    `ReductionCycleFailed`. Nothing is retried here, re-delivering the
    notification starts a new cycle.
    """

    def __init__(
        self,
        key: str,
        athena: AsyncAthena,
        templates: QueryTemplates,
        summary_writer: SummaryWriter,
    ):
        self.key = key
        self._athena = athena
        self._templates = templates
        self._summary_writer = summary_writer
        self.state = CycleState.START
        self.states = [CycleState.START]
        self.formatted_date = ""

    def _transition(self, state: CycleState):
        LOGGER.info(f"[{self.formatted_date or self.key}] {self.state} -> {state}")
        self.state = state
        self.states.append(state)

    async def run(self) -> CycleResult:
        try:
            self._transition(CycleState.PREPARE_INPUT)
            reduction_input = prepare_input(self.key, self._templates)
            self.formatted_date = reduction_input.formatted_date
            LOGGER.debug(f"Prepared reduction input: {reduction_input}")

            # New partitions are invisible to the queries until the catalog is repaired
            self._transition(CycleState.REFRESH_PARTITIONS)
            await self._athena.run_query(self._templates.repair_partitions())

            self._transition(CycleState.RUN_QUERIES)
            summary_result, records_result = await asyncio.gather(
                self._athena.run_query(reduction_input.summary_query),
                self._athena.run_query(reduction_input.records_query),
            )
            if not summary_result.output_location or not records_result.output_location:
                raise ValueError("Query succeeded without an output location")

            self._transition(CycleState.WRITE_SUMMARIES)
            written = await self._summary_writer.write(
                summary_result.output_location, records_result.output_location
            )
        except Exception as e:
            failed_stage = self.state
            self._transition(CycleState.FAILED)
            LOGGER.exception(f"Reduction of {self.key} failed during {failed_stage}")
            raise ReductionCycleFailed(self.key, failed_stage, e) from e

        self._transition(CycleState.DONE)
        return CycleResult(
            key=self.key,
            formatted_date=self.formatted_date,
            summary_location=summary_result.output_location,
            records_location=records_result.output_location,
            summaries_written=written,
            states=list(self.states),
        )


class ReductionOrchestrator:
    """Starts one independent cycle per batch file."""

    def __init__(
        self,
        athena: AsyncAthena,
        templates: QueryTemplates,
        summary_writer: SummaryWriter,
    ):
        self._athena = athena
        self._templates = templates
        self._summary_writer = summary_writer

    def new_cycle(self, key: str) -> ReductionCycle:
        return ReductionCycle(key, self._athena, self._templates, self._summary_writer)

    async def reduce(self, key: str) -> CycleResult:
        return await self.new_cycle(key).run()
