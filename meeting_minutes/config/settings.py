from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Database configuration"""

    host: str = "localhost"
    port: int = 5432
    username: str = "postgres"
    password: SecretStr = Field(default=SecretStr("postgres"))
    database: str = "meeting_minutes"
    dsn: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy async URL; overrides the individual fields.",
    )
    serverless: bool = Field(
        default=True,
        description="If true, disable connection pooling so serverless DBs can pause.",
    )

    @property
    def url(self) -> str:
        """Get database URL"""
        if self.dsn:
            return self.dsn
        username = quote_plus(self.username)
        password = quote_plus(self.password.get_secret_value())
        return (
            "postgresql+asyncpg://"
            f"{username}:{password}"
            f"@{self.host}:{self.port}/{self.database}"
        )

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class S3Config(BaseSettings):
    """S3 configuration"""

    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: str = "us-east-1"
    input_bucket: str = "meeting-minutes-input"
    output_bucket: str = "meeting-minutes-output"

    model_config = SettingsConfigDict(
        env_prefix="S3_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class TranscribeConfig(BaseSettings):
    """Amazon Transcribe batch job configuration."""

    region: str = "us-east-1"
    language_code: str = "en-US"
    media_format: str = "mp4"
    max_speakers: int = Field(default=10, ge=2, le=30)
    job_name_prefix: str = "meeting-minutes"
    submit_retries: int = Field(default=3, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="TRANSCRIBE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class BedrockConfig(BaseSettings):
    """Amazon Bedrock configuration."""

    region: str = Field(
        default="us-east-1",
        validation_alias="BEDROCK_REGION",
    )
    model_id: str = Field(
        default="anthropic.claude-3-sonnet-20240229-v1:0",
        validation_alias="BEDROCK_MODEL_ID",
    )
    max_tokens: int = Field(
        default=4096,
        validation_alias="BEDROCK_MAX_TOKENS",
        ge=1,
        le=8192,
    )
    temperature: float = Field(
        default=0.3,
        validation_alias="BEDROCK_TEMPERATURE",
        ge=0.0,
        le=1.0,
    )
    api_key: SecretStr | None = Field(
        default=None,
        validation_alias="BEDROCK_API_KEY",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class MinutesConfig(BaseSettings):
    """Retry policy for minutes generation."""

    max_retries: int = Field(default=3, ge=1)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0.0)

    model_config = SettingsConfigDict(
        env_prefix="MINUTES_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class WorkflowConfig(BaseSettings):
    """Polling cadence, time ceiling and persistence retries for each job."""

    poll_interval_seconds: float = Field(default=30.0, gt=0.0)
    timeout_seconds: float = Field(default=7200.0, gt=0.0)
    persist_attempts: int = Field(default=3, ge=1)
    persist_retry_delay_seconds: float = Field(default=0.5, ge=0.0)
    max_consecutive_poll_errors: int = Field(default=3, ge=1)
    max_concurrent_jobs: Optional[int] = Field(default=None, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application settings"""

    app_name: str = "Meeting Minutes Backend"
    app_version: str = "1.0.0"
    debug: bool = False
    log_file: str = "logs/app.log"
    pipeline_log_file: str = "logs/minutes_pipeline.log"

    # Database
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # S3
    s3: S3Config = Field(default_factory=S3Config)

    # Transcribe
    transcribe: TranscribeConfig = Field(default_factory=TranscribeConfig)

    # Bedrock
    bedrock: BedrockConfig = Field(default_factory=BedrockConfig)

    # Minutes generation
    minutes: MinutesConfig = Field(default_factory=MinutesConfig)

    # Workflow
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
