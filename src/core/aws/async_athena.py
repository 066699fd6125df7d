import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import StrEnum

from .settings import AwsSettings, build_session, get_aws_settings

LOGGER = logging.getLogger(__name__)


class QueryState(StrEnum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATES = {QueryState.SUCCEEDED, QueryState.FAILED, QueryState.CANCELLED}


class AthenaQueryError(Exception):
    def __init__(self, execution_id: str, state: str, reason: str | None = None):
        self.execution_id = execution_id
        self.state = state
        self.reason = reason
        super().__init__(
            f"Athena query {execution_id} ended in state {state}: {reason or 'no reason given'}"
        )


@dataclass(frozen=True)
class QueryResult:
    execution_id: str
    state: QueryState
    output_location: str | None


class AsyncAthena:
    """
    Submits statements to Athena and waits for them to finish.

    A statement is considered done only once Athena reports a terminal
    state, anything other than SUCCEEDED raises `AthenaQueryError`.
    """

    def __init__(
        self,
        database: str,
        workgroup: str,
        output_location: str | None = None,
        poll_interval: float = 1.0,
        settings: AwsSettings | None = None,
    ):
        self._settings = settings or get_aws_settings()
        self.session = build_session(self._settings)
        self.database = database
        self.workgroup = workgroup
        self.output_location = output_location
        self.poll_interval = poll_interval

    @asynccontextmanager
    async def _client(self):
        async with self.session.client(
            "athena", use_ssl=True, verify=True, **self._settings.client_kwargs()
        ) as client:
            yield client

    async def start_query(self, client, query: str) -> str:
        params = {
            "QueryString": query,
            "QueryExecutionContext": {"Database": self.database},
            "WorkGroup": self.workgroup,
        }
        if self.output_location:
            params["ResultConfiguration"] = {"OutputLocation": self.output_location}
        response = await client.start_query_execution(**params)
        return response["QueryExecutionId"]

    async def wait_for_query(self, client, execution_id: str) -> QueryResult:
        while True:
            response = await client.get_query_execution(QueryExecutionId=execution_id)
            execution = response["QueryExecution"]
            status = execution["Status"]
            state = QueryState(status["State"])
            if state in TERMINAL_STATES:
                break
            await asyncio.sleep(self.poll_interval)

        if state != QueryState.SUCCEEDED:
            raise AthenaQueryError(
                execution_id, state, status.get("StateChangeReason")
            )

        output_location = execution.get("ResultConfiguration", {}).get("OutputLocation")
        return QueryResult(execution_id, state, output_location)

    async def run_query(self, query: str) -> QueryResult:
        """Submit `query` and block until it reaches a terminal state."""
        async with self._client() as client:
            execution_id = await self.start_query(client, query)
            LOGGER.debug(f"Submitted Athena query {execution_id}")
            result = await self.wait_for_query(client, execution_id)
        LOGGER.info(f"Athena query {execution_id} succeeded: {result.output_location}")
        return result
