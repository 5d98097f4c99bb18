from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    DB_HOST: str
    DB_PORT: int
    DB_USER: str
    DB_PASS: str
    DB_NAME: str
    DB_CONNECT_TIMEOUT: float = 10
    DB_COMMAND_TIMEOUT: float = 30

    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    S3_BUCKET: str
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY_ID: str
    S3_SECRET_ACCESS_KEY: str
    S3_ENDPOINT_URL: str | None = None
    # overrides the virtual-hosted bucket url for public links (cdn, minio)
    S3_PUBLIC_BASE_URL: str | None = None
    S3_CONNECT_TIMEOUT: float = 5
    S3_READ_TIMEOUT: float = 30
    S3_MAX_ATTEMPTS: int = 3

    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    SIGNED_URL_EXPIRE_SECONDS: int = 3600
    APP_URL: str = "http://localhost:5173"

    CELERY_BROKER_URL: str = "redis://localhost:6379/0"

    LOG_LEVEL: str = "INFO"
    AUTO_CREATE_TABLES: bool = False

    @property
    def database_url(self):
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASS}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    @property
    def public_base_url(self) -> str:
        if self.S3_PUBLIC_BASE_URL:
            return self.S3_PUBLIC_BASE_URL.rstrip("/")
        return f"https://{self.S3_BUCKET}.s3.{self.S3_REGION}.amazonaws.com"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
