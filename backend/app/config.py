from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "MRD Studio API"
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    cors_origins: str = "http://localhost:3000"
    cors_allow_credentials: bool = True
    log_level: str = "INFO"
    request_id_header: str = "X-Request-ID"

    aws_region: str = "us-east-1"
    # Foundation model IDs. Some regions require an inference profile ID instead (e.g. `eu.amazon.nova-pro-v1:0`).
    bedrock_model_id: str = "amazon.nova-pro-v1:0"
    bedrock_lite_model_id: str = "amazon.nova-lite-v1:0"
    agent_temperature: float = 0.4
    agent_max_tokens: int = 4096

    generation_backend: str = "template"  # template|bedrock
    extraction_backend: str = "deterministic"  # deterministic|bedrock

    quality_passing_score: int = 70
    ensemble_default_strategy: str = "section-voting"
    ensemble_quality_weight: float = 0.6
    ensemble_min_quality_threshold: float = 60.0
    ensemble_max_generations: int = 10

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()
