# topic_browser/core/config.py
import json
from functools import lru_cache
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central application settings loaded from environment variables (and .env).

    Notes
    -----
    - The broker list is read from `KAFKA_BROKER_LIST` (or `KAFKA_BOOTSTRAP`),
      comma-separated, defaulting to `localhost:9092`.
    - Components receive a Settings instance at construction; nothing in the
      core reads the environment on its own.
    - `cors_allow_origins` accepts JSON array or comma-separated string.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ---------- Kafka client/admin ----------
    kafka_bootstrap: str = Field(
        "localhost:9092",
        validation_alias=AliasChoices("KAFKA_BROKER_LIST", "KAFKA_BOOTSTRAP", "kafka_bootstrap"),
    )
    kafka_api_version: str | None = None
    client_id: str = "topic-browser"

    # Client timeouts (ms)
    request_timeout_ms: int = 20_000
    metadata_max_age_ms: int = 30_000
    api_version_auto_timeout_ms: int = 10_000

    # Admin connection retry
    admin_connect_max_tries: int = Field(3, ge=1)
    admin_connect_backoff_sec: float = Field(0.5, ge=0)

    # ---------- Security (set when using SASL/SSL) ----------
    security_protocol: str = "PLAINTEXT"   # e.g. "SASL_SSL", "SSL"
    sasl_mechanism: str | None = None
    sasl_plain_username: str | None = None
    sasl_plain_password: str | None = None
    ssl_cafile: str | None = None

    # ---------- Metadata / watermarks ----------
    metadata_timeout_sec: float = Field(3.0, gt=0)
    include_internal_topics: bool = False
    read_pool_workers: int = Field(4, ge=1, le=64)

    # ---------- Windowed consumption ----------
    window_size: int = Field(20, ge=1, description="Max offsets read per partition per call.")
    default_group_id: str = "topic-browser"
    consume_timeout_sec: float = Field(10.0, gt=0, description="Wall-clock ceiling of one consume call.")
    poll_timeout_ms: int = Field(1000, ge=1, description="A poll idle this long means the log ran dry.")

    # ---------- Topic lifecycle ----------
    admin_operation_timeout_sec: float = Field(3.0, gt=0)
    delete_confirm_initial_interval_sec: float = Field(0.1, gt=0)
    delete_confirm_multiplier: float = Field(2.0, ge=1.0)
    delete_confirm_max_interval_sec: float = Field(1.0, gt=0)
    delete_confirm_jitter: float = Field(0.5, ge=0, lt=1)
    delete_confirm_max_elapsed_sec: float = Field(5.0, gt=0)
    settle_delay_sec: float = Field(0.5, ge=0)

    # ---------- Produce ----------
    produce_timeout_sec: float = Field(10.0, gt=0)

    # ---------- HTTP transport ----------
    worker_pool_size: int = Field(8, ge=1, le=64)
    request_deadline_sec: float = Field(30.0, gt=0)
    cors_allow_origins: Annotated[list[str] | None, NoDecode] = None
    log_level: str = "INFO"

    @field_validator("cors_allow_origins", mode="before")
    def _parse_cors_origins(cls, v):
        """Accept JSON array or comma-separated string."""
        if v is None:
            return None
        if isinstance(v, str):
            try:
                parsed = json.loads(v)  # JSON array
                if isinstance(parsed, list):
                    return [str(s).strip() for s in parsed if str(s).strip()]
            except ValueError:
                pass
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("log_level")
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def bootstrap_servers(self) -> list[str]:
        """Broker list as kafka-python expects it."""
        return [s.strip() for s in self.kafka_bootstrap.split(",") if s.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
