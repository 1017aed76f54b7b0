"""Application configuration for vidingest.

Values are read from ``VIDINGEST_``-prefixed environment variables (or a local
``.env`` file). Secrets such as the service principal credentials and the
storage SAS token are injected through the environment; the defaults below
only describe the non-secret processing profile.
"""

from __future__ import annotations

from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Pydantic settings container for the ingest pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="VIDINGEST_",
        env_file=".env",
        extra="ignore",
    )

    # Identity (client-credentials grant against the tenant)
    aad_tenant_domain: str = Field(
        default="",
        description="Tenant domain used to request media-services tokens.",
    )
    aad_authority_url: str = Field(
        default="https://login.microsoftonline.com",
        description="Base URL of the OAuth2 authority.",
    )
    client_id: str = Field(default="", description="Service principal client id.")
    client_secret: str = Field(default="", description="Service principal secret.")
    media_resource: str = Field(
        default="https://rest.media.azure.net",
        description="Resource (audience) requested for media-services tokens.",
    )
    token_refresh_margin_seconds: int = Field(
        default=300,
        ge=0,
        description="Refresh cached tokens this many seconds before expiry.",
    )

    # Media services
    rest_api_endpoint: str = Field(
        default="",
        description="Media-services REST endpoint, e.g. https://acc.restv2.westus.media.azure.net/api/",
    )
    processor_name: str = Field(
        default="Media Encoder Standard",
        min_length=1,
        description="Name of the media processor used for encoding tasks.",
    )
    preset_name: str = Field(
        default="Adaptive Streaming",
        min_length=1,
        description="Preset passed as task configuration.",
    )
    job_name: str = Field(
        default="Azure Function - MES Job",
        min_length=1,
        description="Display name given to submitted jobs.",
    )
    task_name: str = Field(
        default="Encode with Adaptive Streaming",
        min_length=1,
        description="Display name given to the encoding task.",
    )

    # Storage
    storage_account_url: str = Field(
        default="",
        description="Blob endpoint of the storage account, e.g. https://acc.blob.core.windows.net",
    )
    storage_sas_token: str = Field(
        default="",
        description="Account SAS used to read source blobs and create containers.",
    )
    copy_chunk_size_bytes: int = Field(
        default=4 * 1024 * 1024,
        ge=64 * 1024,
        le=100 * 1024 * 1024,
        description="Block size used when streaming a blob into an asset container.",
    )

    # Access grants
    grant_duration_minutes: int = Field(
        default=240,
        ge=1,
        description="Validity of the write access grant issued for each copy.",
    )
    grant_max_duration_minutes: int = Field(
        default=24 * 60,
        ge=1,
        description="Upper bound for size-scaled grant durations.",
    )
    grant_min_throughput_bytes_per_second: int | None = Field(
        default=None,
        ge=1,
        description=(
            "When set, grants are extended so that a copy at this throughput "
            "fits inside the validity window."
        ),
    )

    # Runtime
    request_timeout_seconds: float = Field(
        default=30.0,
        ge=0.1,
        description="Timeout applied to outbound HTTP requests in seconds.",
    )
    log_level: str = Field(default="INFO", description="Root log level.")

    @property
    def grant_duration(self) -> timedelta:
        return timedelta(minutes=self.grant_duration_minutes)

    @property
    def grant_max_duration(self) -> timedelta:
        return timedelta(minutes=self.grant_max_duration_minutes)

    @classmethod
    def build_default(cls) -> "AppConfig":
        """Construct configuration from the environment with documented defaults."""

        return cls()


def load_config() -> AppConfig:
    """Load configuration from the environment."""
    return AppConfig.build_default()


__all__ = ["AppConfig", "load_config"]
