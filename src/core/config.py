
from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("doppler-invoice-ledger", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # LLM (structured extraction)
    llm_base_url: str | None = Field(default=None, alias="LLM_BASE_URL")
    llm_api_key: str | None = Field(default=None, alias="LLM_API_KEY")
    llm_deployment: str = Field("gpt-4o", alias="LLM_DEPLOYMENT")
    llm_timeout_seconds: float = Field(60.0, alias="LLM_TIMEOUT_SECONDS")
    llm_text_max_tokens: int = Field(1500, alias="LLM_TEXT_MAX_TOKENS")
    llm_vision_max_tokens: int = Field(1000, alias="LLM_VISION_MAX_TOKENS")

    # Azure Document Intelligence (text recognition)
    az_di_endpoint: str | None = Field(default=None, alias="AZ_DI_ENDPOINT")
    az_di_api_key: str | None = Field(default=None, alias="AZ_DI_API_KEY")
    recognizer_timeout_seconds: float = Field(60.0, alias="RECOGNIZER_TIMEOUT_SECONDS")

    # Ledger snapshot (S3 when a bucket is set, local file otherwise)
    aws_region: str = Field("sa-east-1", alias="AWS_REGION")
    s3_bucket: str | None = Field(default=None, alias="S3_BUCKET")
    ledger_object_key: str = Field("ESTUDIOS DOPPLER JULIO - AGOSTO 2025.xlsx", alias="LEDGER_OBJECT_KEY")
    ledger_local_path: str = Field("ledger.xlsx", alias="LEDGER_LOCAL_PATH")

    # Processed-invoice store
    invoice_db_path: str = Field("invoices.db", alias="INVOICE_DB_PATH")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

settings = Settings()
