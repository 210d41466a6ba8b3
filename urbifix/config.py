from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://urbifix:urbifix_dev@db:5432/urbifix"
    DB_ECHO: bool = False

    # Security
    SECRET_KEY: str = "dev-secret-key-not-for-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    BCRYPT_ROUNDS: int = 12
    ALLOWED_ORIGINS: str = "*"
    # Empty disables self-service admin registration
    ADMIN_REGISTRATION_CODE: str = ""

    # Negotiation
    PROPOSAL_EXPIRY_HOURS: int = 24
    PROPOSAL_MAX_EXPIRY_HOURS: int = 168

    # Uploads
    UPLOAD_DIR: str = "./uploads"
    MAX_UPLOAD_SIZE_MB: int = 10
    ALLOWED_UPLOAD_EXTENSIONS: str = "jpeg,jpg,png,gif,pdf,doc,docx,txt"

    # App
    APP_ENV: str = "development"
    APP_URL: str = "http://localhost:1011"
    PORT: int = 1011
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
