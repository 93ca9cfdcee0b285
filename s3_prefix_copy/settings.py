from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

FIVE_MB = 5 * 1024 * 1024


class CopierSettings(BaseSettings):
    """Configuration for the bulk copy engine and its S3 client."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    endpoint: str | None = Field(
        default=None,
        validation_alias="S3_COPY_ENDPOINT",
    )
    access_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "S3_COPY_ACCESS_KEY_ID",
            "AWS_ACCESS_KEY_ID",
        ),
    )
    secret_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "S3_COPY_SECRET_ACCESS_KEY",
            "AWS_SECRET_ACCESS_KEY",
        ),
    )
    session_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "S3_COPY_SESSION_TOKEN",
            "AWS_SESSION_TOKEN",
        ),
    )
    region: str = Field(
        default="ap-northeast-1",
        validation_alias=AliasChoices(
            "S3_COPY_REGION",
            "AWS_REGION",
        ),
    )
    addressing_style: Literal["auto", "virtual", "path"] = Field(
        default="auto",
        validation_alias="S3_COPY_ADDRESSING_STYLE",
    )
    part_size: int = Field(
        default=FIVE_MB * 2,
        gt=0,
        validation_alias="S3_COPY_PART_SIZE",
    )
    single_part_limit: int = Field(
        default=FIVE_MB,
        gt=0,
        validation_alias="S3_COPY_SINGLE_PART_LIMIT",
    )
    worker_count: int = Field(
        default=50,
        gt=0,
        validation_alias="S3_COPY_WORKER_COUNT",
    )
    queue_size: int = Field(
        default=20000,
        gt=0,
        validation_alias="S3_COPY_QUEUE_SIZE",
    )
    abort_on_failure: bool = Field(
        default=True,
        validation_alias="S3_COPY_ABORT_ON_FAILURE",
    )
    manifest_suffixes: tuple[str, ...] | None = Field(
        default=(".m3u8",),
        validation_alias="S3_COPY_MANIFEST_SUFFIXES",
    )
    manifest_content_type: str = Field(
        default="application/vnd.apple.mpegurl",
        validation_alias="S3_COPY_MANIFEST_CONTENT_TYPE",
    )

    @field_validator("manifest_suffixes", mode="before")
    @classmethod
    def _parse_manifest_suffixes(cls, value: object) -> tuple[str, ...] | None:
        if value is None:
            return ()
        if isinstance(value, str):
            return tuple(s.strip() for s in value.split(",") if s.strip())
        if isinstance(value, (list, tuple, set)):
            return tuple(str(s).strip() for s in value if str(s).strip())
        msg = "Invalid manifest suffix format"
        raise ValueError(msg)


def load_settings_from_env() -> CopierSettings:
    """Load copier settings from environment variables.

    Returns:
        CopierSettings instance populated from environment variables.
    """
    return CopierSettings()
