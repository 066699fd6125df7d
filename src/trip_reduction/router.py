import logging
from functools import lru_cache
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from core.aws.async_athena import AsyncAthena
from core.aws.async_dynamodb import TripSummaryTable
from core.aws.async_s3 import AsyncS3

from .config import get_reduction_settings
from .orchestrator import CycleResult, ReductionCycleFailed, ReductionOrchestrator
from .queries import QueryTemplates
from .schemas import BatchFileNotification
from .summary_writer import SummaryWriter

LOGGER = logging.getLogger(__name__)


@lru_cache
def get_orchestrator() -> ReductionOrchestrator:
    settings = get_reduction_settings()
    athena = AsyncAthena(
        database=settings.ATHENA_DATABASE_NAME,
        workgroup=settings.ATHENA_WORKGROUP,
        output_location=settings.ATHENA_OUTPUT_LOCATION,
        poll_interval=settings.ATHENA_POLL_INTERVAL,
    )
    table = TripSummaryTable(
        settings.TRIP_SUMMARIES_TABLE_NAME, batch_size=settings.SUMMARY_BATCH_SIZE
    )
    writer = SummaryWriter(
        AsyncS3(), table, expected_events_per_second=settings.EXPECTED_EVENTS_PER_SECOND
    )
    return ReductionOrchestrator(athena, QueryTemplates(settings.ATHENA_TABLE_NAME), writer)


OrchestratorDep = Annotated[ReductionOrchestrator, Depends(get_orchestrator)]


async def handle_notification(
    payload: dict[str, Any], orchestrator: ReductionOrchestrator
) -> CycleResult:
    """One reduction cycle per written batch file, no deduplication."""
    notification = BatchFileNotification.from_payload(payload)
    LOGGER.info(
        f"Processing new incoming partition s3://{notification.bucket_name}/{notification.key}"
    )
    return await orchestrator.reduce(notification.key)


notification_router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
    default_response_class=JSONResponse,
)


@notification_router.post("/batch-files")
async def receive_batch_file_notification(
    orchestrator: OrchestratorDep,
    payload: dict[str, Any] = Body(...),
):
    try:
        result = await handle_notification(payload, orchestrator)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))
    except ReductionCycleFailed as e:
        # Non 2xx lets the source re-deliver the notification
        raise HTTPException(
            status_code=502,
            detail={"key": e.key, "stage": e.stage, "error": str(e.cause)},
        )

    return {
        "key": result.key,
        "partition": result.formatted_date,
        "state": result.states[-1],
        "summaries_written": result.summaries_written,
        "records_file": result.records_location,
    }
