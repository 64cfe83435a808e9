"""Application configuration for the NAMASTE / ICD-11 terminology service.

Configuration is loaded from environment variables (and an optional ``.env``
file), making the service suitable for container-based deployments.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "terminology"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"

    database_url: str | None = None

    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:3001"]

    fhir_base_url: str = "http://localhost:8000/fhir"

    # WHO ICD-11 API. Upstream lookups are disabled when no client id is set.
    icd11_api_url: str = "https://id.who.int/icd"
    icd11_token_url: str = "https://icdaccessmanagement.who.int/connect/token"
    icd11_client_id: str | None = None
    icd11_client_secret: str | None = None
    icd11_timeout_seconds: float = 10.0

    @property
    def sqlalchemy_database_uri(self) -> str:
        if self.database_url:
            return self.database_url

        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def upstream_lookup_enabled(self) -> bool:
        return bool(self.icd11_client_id and self.icd11_client_secret)


settings = Settings()
