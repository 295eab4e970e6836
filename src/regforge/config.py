"""Process configuration contract and the immutable run context."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PLACEHOLDER_ACCOUNT_ID = "000000000000"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = Field(alias="APP_ENV", default="dev")
    log_level: str = Field(alias="LOG_LEVEL", default="INFO")
    log_json: int = Field(alias="LOG_JSON", default=0)
    aws_region: str = Field(alias="AWS_REGION", default="us-east-1")
    aws_account_id: str = Field(alias="AWS_ACCOUNT_ID", default=PLACEHOLDER_ACCOUNT_ID)
    aws_partition: str = Field(alias="AWS_PARTITION", default="aws")


def validate_settings_for_env(settings: Settings) -> None:
    if settings.app_env != "prod":
        return

    missing: list[str] = []
    required_non_empty = {
        "AWS_REGION": settings.aws_region,
        "AWS_ACCOUNT_ID": settings.aws_account_id,
        "AWS_PARTITION": settings.aws_partition,
    }
    for key, value in required_non_empty.items():
        if not value.strip():
            missing.append(key)

    if settings.aws_account_id == PLACEHOLDER_ACCOUNT_ID:
        missing.append("AWS_ACCOUNT_ID(non-placeholder value)")
    account = settings.aws_account_id.strip()
    if account and (len(account) != 12 or not account.isdigit()):
        missing.append("AWS_ACCOUNT_ID(12 digits required)")

    if missing:
        keys = ", ".join(sorted(set(missing)))
        raise ValueError(f"invalid production configuration: {keys}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


@dataclass(frozen=True, slots=True)
class RunContext:
    """Provider-wide values threaded through graph construction."""

    region: str
    account_id: str
    partition: str = "aws"

    @classmethod
    def from_settings(cls, settings: Settings) -> RunContext:
        return cls(
            region=settings.aws_region.strip(),
            account_id=settings.aws_account_id.strip(),
            partition=settings.aws_partition.strip() or "aws",
        )

    def service_name(self, service: str) -> str:
        return f"com.amazonaws.{self.region}.{service}"

    def registry_host(self) -> str:
        suffix = "amazonaws.com.cn" if self.partition == "aws-cn" else "amazonaws.com"
        return f"{self.account_id}.dkr.ecr.{self.region}.{suffix}"
