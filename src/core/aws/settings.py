from functools import lru_cache

import aioboto3
from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class AwsSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore", case_sensitive=True)

    AWS_REGION: str = Field(default="eu-west-1")
    AWS_ENDPOINT_URL: str | None = None
    AWS_ACCESS_KEY_ID: str | None = None
    AWS_SECRET_ACCESS_KEY: str | None = None

    @field_validator("AWS_ENDPOINT_URL")
    @classmethod
    def validate_https_endpoint(cls, v: str | None) -> str | None:
        """
        Custom endpoints (localstack, minio...) must still use HTTPS so that
        data stays encrypted in transit.
        """
        if v is not None and not v.startswith("https://"):
            raise ValueError(
                "AWS_ENDPOINT_URL must use HTTPS protocol to ensure encryption in transit. "
                f"Got: {v}. Please update to use https://"
            )
        return v

    def client_kwargs(self) -> dict[str, str]:
        kwargs = {"region_name": self.AWS_REGION}
        if self.AWS_ENDPOINT_URL:
            kwargs["endpoint_url"] = self.AWS_ENDPOINT_URL
        return kwargs


@lru_cache
def get_aws_settings() -> AwsSettings:
    return AwsSettings()


def build_session(settings: AwsSettings) -> aioboto3.Session:
    return aioboto3.Session(
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        region_name=settings.AWS_REGION,
    )
