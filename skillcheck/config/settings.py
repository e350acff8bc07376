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
    database: str = "skillcheck"
    schema_name: Optional[str] = None
    serverless: bool = Field(
        default=True,
        description="If true, disable connection pooling so serverless DBs can pause.",
    )

    @property
    def url(self) -> str:
        """Get database URL"""
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
    """S3 configuration for recorded assessment media."""

    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: str = "ap-south-1"
    bucket_name: str = "skillcheck-assessments"

    model_config = SettingsConfigDict(
        env_prefix="S3_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class BedrockConfig(BaseSettings):
    """Amazon Bedrock configuration (primary text-generation backend)."""

    region: str = Field(
        default="us-east-1",
        validation_alias="BEDROCK_REGION",
    )
    model_id: str = Field(
        default="amazon.nova-lite-v1:0",
        validation_alias="BEDROCK_MODEL_ID",
    )
    max_tokens: int = Field(
        default=1000,
        validation_alias="BEDROCK_MAX_TOKENS",
        ge=1,
        le=4096,
    )
    temperature: float = Field(
        default=0.3,
        validation_alias="BEDROCK_TEMPERATURE",
        ge=0.0,
        le=1.0,
    )
    top_p: float = Field(
        default=0.9,
        validation_alias="BEDROCK_TOP_P",
        ge=0.0,
        le=1.0,
    )
    api_keys: SecretStr | None = Field(
        default=None,
        validation_alias="BEDROCK_API_KEYS",
        description="Comma-separated pool of base64 encoded access:secret pairs.",
    )
    timeout_seconds: float = Field(
        default=30.0,
        validation_alias="BEDROCK_TIMEOUT_SECONDS",
        gt=0,
    )

    @property
    def key_pool(self) -> list[str]:
        """Return the configured API keys in rotation order."""

        if not self.api_keys:
            return []
        raw = self.api_keys.get_secret_value()
        return [key.strip() for key in raw.split(",") if key.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class OllamaConfig(BaseSettings):
    """Self-hosted Ollama configuration (secondary text-generation backend)."""

    enabled: bool = True
    base_url: str = "http://localhost:11434"
    model: str = "llama3.1:8b"
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=1)
    timeout_seconds: float = Field(default=60.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="OLLAMA_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class TranscribeConfig(BaseSettings):
    """Amazon Transcribe Streaming configuration."""

    region: str = "ap-south-1"
    default_language_code: str = "en-IN"
    # Candidates for automatic language identification when no hint is given.
    language_options: list[str] = Field(default_factory=lambda: ["en-IN", "hi-IN", "te-IN"])
    sample_rate_hz: int = 16000
    timeout_seconds: float = Field(default=120.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="TRANSCRIBE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class PipelineConfig(BaseSettings):
    """Timeouts and retry limits for the assessment pipeline."""

    media_download_timeout_seconds: float = Field(default=30.0, gt=0)
    # Shorter client-reported recordings are flagged for review.
    min_recording_ms: int = Field(default=3000, ge=0)
    persistence_attempts: int = Field(default=3, ge=1)
    persistence_backoff_seconds: float = Field(default=1.5, ge=0)
    persistence_timeout_seconds: float = Field(default=10.0, gt=0)
    retention_attempts: int = Field(default=2, ge=1)
    retention_backoff_seconds: float = Field(default=1.0, ge=0)
    retention_queue_size: int = Field(default=256, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application settings"""

    app_name: str = "SkillCheck Verification Backend"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_file: str = "logs/app.log"
    pipeline_log_file: str = "logs/assessment_pipeline.log"
    transcript_log_file: str = "logs/transcripts.log"

    # Database
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # S3
    s3: S3Config = Field(default_factory=S3Config)

    # Text generation
    bedrock: BedrockConfig = Field(default_factory=BedrockConfig)
    ollama: OllamaConfig = Field(default_factory=OllamaConfig)

    # Speech to text
    transcribe: TranscribeConfig = Field(default_factory=TranscribeConfig)

    # Pipeline timeouts and retries
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
