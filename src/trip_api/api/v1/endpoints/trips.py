from fastapi import APIRouter, HTTPException, Path

from trip_api.services.trip_aggregation import TripAggregationDep, TripSummaryNotFound
from trip_reduction.schemas import AggregatedTrip

router = APIRouter()


@router.get("/{trip_id}", response_model=AggregatedTrip)
async def get_trip(
    service: TripAggregationDep,
    trip_id: str = Path(..., description="The trip id"),
):
    """
    Full record set of a finished trip, aggregated on first request.
    """
    try:
        return await service.get_aggregated_trip(trip_id)
    except TripSummaryNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
