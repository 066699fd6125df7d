import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from botocore.client import Config
from botocore.exceptions import ClientError

from .settings import AwsSettings, build_session, get_aws_settings

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client as AsyncS3Client


class AsyncS3:
    """
    Asynchronous S3 client used for query results, reduced trip files and
    aggregated trip objects.

    All connections go through HTTPS with certificate verification.
    """

    def __init__(
        self,
        settings: AwsSettings | None = None,
        max_concurrency: int = 50,
        custom_config: Config | None = None,
    ):
        self._settings = settings or get_aws_settings()
        self.session = build_session(self._settings)

        self.max_concurrency = max_concurrency
        self._sem = asyncio.Semaphore(max_concurrency)
        self.logger = logging.getLogger(__name__)

        if custom_config is not None:
            self._boto_config = custom_config
        else:
            self._boto_config = Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
                max_pool_connections=max_concurrency,
            )

    @asynccontextmanager
    async def _client(self) -> AsyncGenerator["AsyncS3Client", None]:
        async with self.session.client(
            "s3",
            use_ssl=True,
            verify=True,
            config=self._boto_config,
            **self._settings.client_kwargs(),
        ) as client:
            yield client

    async def get_file(self, bucket: str, path: str) -> bytes | None:
        async with self._sem, self._client() as client:
            try:
                response = await client.get_object(Bucket=bucket, Key=path)
                async with response["Body"] as stream:
                    return await stream.read()
            except ClientError as e:
                if e.response["Error"]["Code"] == "NoSuchKey":
                    return None
                raise

    async def upload_file(
        self,
        bucket: str,
        path: str,
        file: bytes,
        content_type: str = "application/json",
    ) -> None:
        async with self._sem, self._client() as client:
            await client.put_object(
                Bucket=bucket, Key=path, Body=file, ContentType=content_type
            )

    async def select_csv_rows(
        self, bucket: str, path: str, expression: str
    ) -> AsyncGenerator[list[dict[str, Any]], None]:
        """
        Run a server side SQL selection over a CSV object (first line used as
        header) and yield the matching rows page by page.

        Only the rows matching `expression` leave the storage service, the
        object itself is never downloaded.
        Lines of a page that are not valid JSON are dropped.
        """
        async with self._sem, self._client() as client:
            response = await client.select_object_content(
                Bucket=bucket,
                Key=path,
                ExpressionType="SQL",
                Expression=expression,
                InputSerialization={"CSV": {"FileHeaderInfo": "USE"}},
                OutputSerialization={"JSON": {}},
            )
            # A row can be split across two Records events
            pending = ""
            async for event in response["Payload"]:
                if "Records" in event:
                    pending += event["Records"]["Payload"].decode("utf-8")
                    *lines, pending = pending.split("\n")
                    page = _parse_json_lines(lines, self.logger)
                    if page:
                        yield page
                elif "End" in event:
                    self.logger.debug(f"Selection over s3://{bucket}/{path} finished")
            if pending.strip():
                page = _parse_json_lines([pending], self.logger)
                if page:
                    yield page


def _parse_json_lines(lines: list[str], logger: logging.Logger) -> list[dict[str, Any]]:
    rows = []
    for line in lines:
        if not line.strip():
            continue
        try:
            rows.append(json.loads(line))
        except json.JSONDecodeError:
            logger.warning(f"Skipping unparseable selected row: {line[:200]}")
    return rows


def get_async_s3() -> AsyncS3:
    return AsyncS3()
