from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import pytest

from core.aws.async_athena import AsyncAthena, AthenaQueryError, QueryState


def _execution(state: str, output_location: str | None = None, reason: str | None = None):
    status = {"State": state}
    if reason:
        status["StateChangeReason"] = reason
    execution = {"QueryExecutionId": "query-1", "Status": status}
    if output_location:
        execution["ResultConfiguration"] = {"OutputLocation": output_location}
    return {"QueryExecution": execution}


def _athena(aws_settings, **kwargs) -> AsyncAthena:
    return AsyncAthena(
        database="telemetry",
        workgroup="TripReduction",
        poll_interval=0,
        settings=aws_settings,
        **kwargs,
    )


def _patched(athena: AsyncAthena, mock_client):
    @asynccontextmanager
    async def mock_client_ctx():
        yield mock_client

    return patch.object(athena, "_client", side_effect=mock_client_ctx)


@pytest.mark.asyncio
async def test_run_query_polls_until_succeeded(aws_settings):
    athena = _athena(aws_settings)

    mock_client = AsyncMock()
    mock_client.start_query_execution = AsyncMock(return_value={"QueryExecutionId": "query-1"})
    mock_client.get_query_execution = AsyncMock(
        side_effect=[
            _execution("QUEUED"),
            _execution("RUNNING"),
            _execution("SUCCEEDED", "s3://reduced-trips/query-1.csv"),
        ]
    )

    with _patched(athena, mock_client):
        result = await athena.run_query("SELECT 1;")

    assert result.execution_id == "query-1"
    assert result.state == QueryState.SUCCEEDED
    assert result.output_location == "s3://reduced-trips/query-1.csv"
    assert mock_client.get_query_execution.call_count == 3

    kwargs = mock_client.start_query_execution.call_args.kwargs
    assert kwargs["QueryString"] == "SELECT 1;"
    assert kwargs["QueryExecutionContext"] == {"Database": "telemetry"}
    assert kwargs["WorkGroup"] == "TripReduction"
    assert "ResultConfiguration" not in kwargs


@pytest.mark.asyncio
async def test_run_query_uses_output_location(aws_settings):
    athena = _athena(aws_settings, output_location="s3://reduced-trips/")

    mock_client = AsyncMock()
    mock_client.start_query_execution = AsyncMock(return_value={"QueryExecutionId": "query-1"})
    mock_client.get_query_execution = AsyncMock(
        return_value=_execution("SUCCEEDED", "s3://reduced-trips/query-1.csv")
    )

    with _patched(athena, mock_client):
        await athena.run_query("SELECT 1;")

    kwargs = mock_client.start_query_execution.call_args.kwargs
    assert kwargs["ResultConfiguration"] == {"OutputLocation": "s3://reduced-trips/"}


@pytest.mark.asyncio
@pytest.mark.parametrize("state", ["FAILED", "CANCELLED"])
async def test_run_query_raises_when_not_succeeded(aws_settings, state):
    athena = _athena(aws_settings)

    mock_client = AsyncMock()
    mock_client.start_query_execution = AsyncMock(return_value={"QueryExecutionId": "query-1"})
    mock_client.get_query_execution = AsyncMock(
        return_value=_execution(state, reason="SYNTAX_ERROR")
    )

    with _patched(athena, mock_client):
        with pytest.raises(AthenaQueryError) as exc_info:
            await athena.run_query("SELEC 1;")

    assert exc_info.value.execution_id == "query-1"
    assert exc_info.value.state == state
    assert exc_info.value.reason == "SYNTAX_ERROR"
